"""
Wire models for the knowledge-base search collaborator.
"""

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.sessions.models import Language


class PassageSource(BaseModel):
    """Structured reference to where a passage comes from."""

    model_config = ConfigDict(extra="ignore")

    work: str | int | None = None
    book: str | int | None = None
    chapter: str | int | None = None
    verse_range: str | int | None = None
    edition: str | int | None = None


class Passage(BaseModel):
    """One paraphrased reference returned by the KB."""

    model_config = ConfigDict(extra="ignore")

    passage: str = Field(default="", description="Trimmed passage text")
    source: PassageSource = Field(default_factory=PassageSource)
    language: str | None = None
    sensitive_tags: list[str] = Field(default_factory=list)


class KBSearchRequest(BaseModel):
    """Body of a KB search request."""

    query: str = Field(..., min_length=1)
    lang: Language = Language.AUTO
    k: int = Field(default=4, ge=1, le=4)


class KBSearchResponse(BaseModel):
    """Body of a KB search response. A missing collection means no passages."""

    model_config = ConfigDict(extra="ignore")

    passages: list[Passage] = Field(default_factory=list)
