"""
Run the orchestrator with uvicorn: `python -m orchestrator`.
"""

import uvicorn

from orchestrator.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "orchestrator.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
