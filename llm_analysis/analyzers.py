"""LLM-backed implementations of the analysis collaborators.

Each class satisfies one protocol from ``app.domain.collaborators`` and
converts every adapter or output-validation failure to CollaboratorError.
"""

import logging
from typing import Mapping, Optional, Sequence, Type, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel

from app.config import LLMSettings, get_llm_settings
from app.domain.errors import CollaboratorError
from app.domain.evaluation import ConversationTurn, MetricValue
from app.domain.phases import Phase
from llm_analysis.adapter import BaseLLMAdapter, LLMAdapterError, build_adapter
from llm_analysis.prompt_builder import PhasePromptBuilder
from llm_analysis.retry import LLMRetryExhaustedError, generate_with_retry
from llm_analysis.schema import ChatOutput, CompetitorOutput, NarrativeOutput, ScoreOutput
from llm_analysis.validator import LLMOutputValidationError

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)

_LLM_FAILURES = (LLMAdapterError, LLMOutputValidationError, LLMRetryExhaustedError)


class _LLMCollaborator:
    collaborator_name = "llm"

    def __init__(
        self,
        adapter: Optional[BaseLLMAdapter] = None,
        *,
        settings: Optional[LLMSettings] = None,
        prompt_builder: Optional[PhasePromptBuilder] = None,
    ) -> None:
        self._settings = settings or get_llm_settings()
        self._adapter = adapter or build_adapter(self._settings)
        self._prompts = prompt_builder or PhasePromptBuilder()

    def _call(
        self,
        prompt: str,
        output_model: Type[OutputT],
        image_base64: Optional[str] = None,
    ) -> OutputT:
        try:
            return generate_with_retry(
                self._adapter,
                prompt,
                output_model,
                max_retries=self._settings.max_retries,
                image_base64=image_base64,
            )
        except _LLM_FAILURES as exc:
            logger.warning("%s call failed: %s", self.collaborator_name, exc)
            raise CollaboratorError(self.collaborator_name, str(exc)) from exc


class LLMNarrativeAnalyzer(_LLMCollaborator):
    collaborator_name = "narrative_analyzer"

    def analyze(
        self,
        url: str,
        phase: Phase,
        metrics: Mapping[str, MetricValue],
        history: Sequence[ConversationTurn],
        screenshot: Optional[str] = None,
    ) -> str:
        prompt = self._prompts.build_narrative_prompt(url, phase, metrics, history)
        image = screenshot if phase is Phase.VISION else None
        return self._call(prompt, NarrativeOutput, image_base64=image).narrative


class LLMPhaseScorer(_LLMCollaborator):
    collaborator_name = "phase_scorer"

    def score(self, phase: Phase, metrics: Mapping[str, MetricValue]) -> int:
        prompt = self._prompts.build_score_prompt(phase, metrics)
        return self._call(prompt, ScoreOutput).score


class LLMCompetitorDiscoverer(_LLMCollaborator):
    collaborator_name = "competitor_discoverer"

    def __init__(self, adapter: Optional[BaseLLMAdapter] = None, *, max_competitors: int = 5, **kwargs) -> None:
        super().__init__(adapter, **kwargs)
        self._max_competitors = max_competitors

    def discover(self, url: str) -> list[str]:
        prompt = self._prompts.build_competitor_prompt(url, self._max_competitors)
        output = self._call(prompt, CompetitorOutput)
        return [candidate.strip() for candidate in output.competitors if _is_http_url(candidate.strip())]


class LLMChatResponder(_LLMCollaborator):
    collaborator_name = "chat_responder"

    def reply(
        self,
        url: str,
        phase: Optional[Phase],
        message: str,
        history: Sequence[ConversationTurn],
    ) -> str:
        prompt = self._prompts.build_chat_prompt(url, phase, message, history)
        return self._call(prompt, ChatOutput).reply


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)
