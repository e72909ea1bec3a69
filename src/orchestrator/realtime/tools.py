"""
Tool definitions registered with the vendor's realtime assistant.

The assistant invokes these by name through tool-call webhooks; the lifecycle
service answers them.
"""

from typing import Any

KB_SEARCH_TOOL = "kb_search"
CRISIS_SIGNAL_TOOL = "crisis_signal"

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": KB_SEARCH_TOOL,
        "description": "Optional cultural references (EN/HI), paraphrased.",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "lang": {"type": "string", "enum": ["en", "hi", "auto"]},
                "k": {"type": "number", "minimum": 1, "maximum": 4},
            },
            "required": ["query"],
        },
    },
    {
        "name": CRISIS_SIGNAL_TOOL,
        "description": "Returns risk assessment for crisis escalation.",
        "parameters": {"type": "object", "properties": {}},
    },
]
