"""Structured prompt builder for phase analysis."""

import json
from typing import Dict, Mapping, Optional, Sequence, Type

from pydantic import BaseModel

from app.domain.evaluation import ConversationTurn
from app.domain.phases import Phase
from llm_analysis.schema import ChatOutput, CompetitorOutput, NarrativeOutput, ScoreOutput

_SYSTEM_INSTRUCTIONS = """\
You are a senior website reviewer evaluating a live website.

STRICT RULES:
- Base every statement on the metrics and conversation provided below.
- Do NOT invent measurements that are not present in the data.
- Return strictly valid JSON matching the schema defined below.
- Do NOT include any text outside the JSON object.
"""

_PHASE_FOCUS: Dict[Phase, str] = {
    Phase.VISION: (
        "Judge the visual design from the attached screenshot: layout, hierarchy, "
        "branding consistency and first impression."
    ),
    Phase.UI: "Assess color contrast, typography, responsiveness and accessibility of the interface.",
    Phase.FUNCTIONALITY: "Assess broken links, form behaviour, interactive elements and keyboard accessibility.",
    Phase.PERFORMANCE: (
        "Assess load timings, Core Web Vitals, page weight, request count and "
        "transport security."
    ),
    Phase.SEO: "Assess title and meta description quality, heading structure and Lighthouse SEO signals.",
    Phase.OVERALL: "Summarize the strengths and weaknesses found across all previous phases.",
    Phase.RECOMMENDATIONS: (
        "Give prioritized, concrete recommendations for improving the website, "
        "referencing what comparable competitor sites do well."
    ),
}

_SECTION_TEMPLATE = """\
## {title}
```json
{data}
```
"""


def _schema_block(output_model: Type[BaseModel]) -> str:
    schema = json.dumps(output_model.model_json_schema(), indent=2)
    return (
        "# OUTPUT SCHEMA\n\n"
        "Your response MUST conform to this JSON schema:\n\n"
        f"```json\n{schema}\n```\n"
    )


class PhasePromptBuilder:
    """Builds deterministic prompts for each analysis call."""

    def build_narrative_prompt(
        self,
        url: str,
        phase: Phase,
        metrics: Mapping[str, object],
        history: Sequence[ConversationTurn],
    ) -> str:
        return (
            f"{_SYSTEM_INSTRUCTIONS}\n"
            f"# WEBSITE\n\n{url}\n\n"
            f"# PHASE: {phase.value}\n\n{_PHASE_FOCUS[phase]}\n\n"
            f"# PROVIDED DATA\n\n{self._format_section('Metrics', metrics)}\n"
            f"{self._format_history(history)}"
            f"{_schema_block(NarrativeOutput)}\n"
            "# TASK\n\n"
            "Write the phase analysis as the `narrative` field of a single JSON object."
        )

    def build_score_prompt(self, phase: Phase, metrics: Mapping[str, object]) -> str:
        return (
            f"{_SYSTEM_INSTRUCTIONS}\n"
            f"# PHASE: {phase.value}\n\n{_PHASE_FOCUS[phase]}\n\n"
            f"# PROVIDED DATA\n\n{self._format_section('Metrics', metrics)}\n"
            f"{_schema_block(ScoreOutput)}\n"
            "# TASK\n\n"
            "Rate this phase from 0 (unusable) to 100 (exemplary) as the integer `score` field."
        )

    def build_competitor_prompt(self, url: str, max_competitors: int) -> str:
        return (
            f"{_SYSTEM_INSTRUCTIONS}\n"
            f"# WEBSITE\n\n{url}\n\n"
            f"{_schema_block(CompetitorOutput)}\n"
            "# TASK\n\n"
            f"List up to {max_competitors} homepage URLs of direct competitors of this website "
            "in the `competitors` field. Use absolute https URLs only."
        )

    def build_chat_prompt(
        self,
        url: str,
        phase: Optional[Phase],
        message: str,
        history: Sequence[ConversationTurn],
    ) -> str:
        phase_line = f"The user is currently reviewing the {phase.value} phase.\n\n" if phase else ""
        return (
            f"{_SYSTEM_INSTRUCTIONS}\n"
            f"# WEBSITE\n\n{url}\n\n"
            f"{phase_line}"
            f"{self._format_history(history)}"
            f"# QUESTION\n\n{message}\n\n"
            f"{_schema_block(ChatOutput)}\n"
            "# TASK\n\n"
            "Answer the question in the `reply` field of a single JSON object."
        )

    def _format_section(self, title: str, data: Mapping[str, object]) -> str:
        body = json.dumps(dict(data), indent=2, default=str, sort_keys=True)
        return _SECTION_TEMPLATE.format(title=title, data=body)

    def _format_history(self, history: Sequence[ConversationTurn]) -> str:
        if not history:
            return ""
        lines = [f"[{turn.role}] {turn.content}" for turn in history]
        return "# CONVERSATION SO FAR\n\n" + "\n".join(lines) + "\n\n"
