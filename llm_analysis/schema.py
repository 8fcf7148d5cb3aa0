"""Structured output contracts for the analysis LLM calls."""

from pydantic import BaseModel, ConfigDict, Field


class _AnalysisOutput(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )


class NarrativeOutput(_AnalysisOutput):
    """Narrative analysis of one phase."""

    narrative: str = Field(min_length=1)


class ScoreOutput(_AnalysisOutput):
    """Numeric phase score in [0, 100]."""

    score: int = Field(ge=0, le=100)


class CompetitorOutput(_AnalysisOutput):
    """Competitor homepage URLs for the recommendations phase."""

    competitors: list[str] = Field(default_factory=list, max_length=20)


class ChatOutput(_AnalysisOutput):
    """Assistant reply to a free-form user question."""

    reply: str = Field(min_length=1)
