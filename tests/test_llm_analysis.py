import json

import pytest
from pydantic import ValidationError

from app.config import LLMSettings
from app.domain.errors import CollaboratorError
from app.domain.evaluation import ConversationTurn
from app.domain.phases import Phase
from llm_analysis.adapter import BaseLLMAdapter, LLMAdapterError, MockLLMAdapter, build_adapter
from llm_analysis.analyzers import (
    LLMChatResponder,
    LLMCompetitorDiscoverer,
    LLMNarrativeAnalyzer,
    LLMPhaseScorer,
)
from llm_analysis.prompt_builder import PhasePromptBuilder
from llm_analysis.retry import LLMRetryExhaustedError, generate_with_retry
from llm_analysis.schema import CompetitorOutput, NarrativeOutput, ScoreOutput
from llm_analysis.validator import LLMOutputValidationError, validate_llm_output

_SETTINGS = LLMSettings(adapter="mock", max_retries=2)


class ScriptedAdapter(BaseLLMAdapter):
    """Returns the queued responses in order and records every call."""

    def __init__(self, *responses: str) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, object]] = []

    def generate(self, prompt, image_base64=None):
        self.calls.append((prompt, image_base64))
        return self._responses.pop(0)


class FailingAdapter(BaseLLMAdapter):
    def __init__(self) -> None:
        self.calls = 0

    def generate(self, prompt, image_base64=None):
        self.calls += 1
        raise LLMAdapterError("APIConnectionError: connection refused")


# ---------------------------------------------------------------------------
# Contracts and validation
# ---------------------------------------------------------------------------


def test_score_contract_bounds() -> None:
    assert ScoreOutput(score=0).score == 0
    with pytest.raises(ValidationError):
        ScoreOutput(score=101)


def test_narrative_contract_rejects_extra_fields() -> None:
    with pytest.raises(ValidationError):
        NarrativeOutput(narrative="ok", mood="cheerful")


def test_validator_strips_markdown_fences() -> None:
    raw = '```json\n{"narrative": "  Clean layout.  "}\n```'
    assert validate_llm_output(raw, NarrativeOutput).narrative == "Clean layout."


def test_validator_ignores_keys_outside_contract() -> None:
    raw = json.dumps({"score": 64, "narrative": "unused"})
    assert validate_llm_output(raw, ScoreOutput).score == 64


def test_validator_reports_json_errors() -> None:
    with pytest.raises(LLMOutputValidationError) as excinfo:
        validate_llm_output("not json", ScoreOutput)
    assert excinfo.value.stage == "json_parse"
    assert excinfo.value.raw_response == "not json"


def test_validator_rejects_non_object_payloads() -> None:
    with pytest.raises(LLMOutputValidationError) as excinfo:
        validate_llm_output('["https://a.example"]', CompetitorOutput)
    assert excinfo.value.stage == "schema"


def test_validator_reports_schema_errors() -> None:
    with pytest.raises(LLMOutputValidationError) as excinfo:
        validate_llm_output('{"score": 140}', ScoreOutput)
    assert excinfo.value.stage == "schema"
    assert excinfo.value.errors[0].startswith("score:")


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def test_retry_recovers_after_formatting_error() -> None:
    adapter = ScriptedAdapter("oops", '{"score": 55}')
    assert generate_with_retry(adapter, "prompt", ScoreOutput, max_retries=2).score == 55
    assert len(adapter.calls) == 2


def test_retry_exhaustion_keeps_history() -> None:
    adapter = ScriptedAdapter("a", "b", "c")
    with pytest.raises(LLMRetryExhaustedError) as excinfo:
        generate_with_retry(adapter, "prompt", ScoreOutput, max_retries=2)
    assert excinfo.value.attempts == 3
    assert len(excinfo.value.history) == 3


def test_transport_errors_are_not_retried() -> None:
    adapter = FailingAdapter()
    with pytest.raises(LLMAdapterError):
        generate_with_retry(adapter, "prompt", ScoreOutput, max_retries=2)
    assert adapter.calls == 1


def test_retry_forwards_image_on_every_attempt() -> None:
    adapter = ScriptedAdapter("bad", '{"narrative": "ok"}')
    generate_with_retry(adapter, "prompt", NarrativeOutput, image_base64="aGVsbG8=")
    assert [image for _, image in adapter.calls] == ["aGVsbG8=", "aGVsbG8="]


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


def test_mock_adapter_satisfies_every_contract() -> None:
    adapter = MockLLMAdapter()
    raw = adapter.generate("any prompt")
    assert validate_llm_output(raw, ScoreOutput).score == 72
    assert validate_llm_output(raw, CompetitorOutput).competitors
    assert adapter.prompts == ["any prompt"]


def test_build_adapter_selects_mock() -> None:
    assert isinstance(build_adapter(_SETTINGS), MockLLMAdapter)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


def test_narrative_analyzer_attaches_screenshot_only_for_vision() -> None:
    adapter = ScriptedAdapter('{"narrative": "Bold hero."}', '{"narrative": "Readable type."}')
    analyzer = LLMNarrativeAnalyzer(adapter, settings=_SETTINGS)

    assert analyzer.analyze("https://a.example", Phase.VISION, {}, [], screenshot="aGVsbG8=") == "Bold hero."
    analyzer.analyze("https://a.example", Phase.UI, {"contrast": {"ratio": 4.5}}, [], screenshot="aGVsbG8=")

    assert adapter.calls[0][1] == "aGVsbG8="
    assert adapter.calls[1][1] is None
    assert '"ratio": 4.5' in adapter.calls[1][0]


def test_scorer_converts_invalid_output_to_collaborator_error() -> None:
    adapter = ScriptedAdapter('{"score": 140}', '{"score": 140}', '{"score": 140}')
    scorer = LLMPhaseScorer(adapter, settings=_SETTINGS)
    with pytest.raises(CollaboratorError) as excinfo:
        scorer.score(Phase.SEO, {})
    assert excinfo.value.collaborator == "phase_scorer"


def test_transport_failure_becomes_collaborator_error() -> None:
    responder = LLMChatResponder(FailingAdapter(), settings=_SETTINGS)
    with pytest.raises(CollaboratorError) as excinfo:
        responder.reply("https://a.example", Phase.UI, "why?", [])
    assert "connection refused" in str(excinfo.value)


def test_discoverer_keeps_only_absolute_http_urls() -> None:
    payload = {"competitors": [" https://rival.example ", "ftp://files.example", "rival-two.example", "http://b.example"]}
    discoverer = LLMCompetitorDiscoverer(ScriptedAdapter(json.dumps(payload)), max_competitors=3, settings=_SETTINGS)
    assert discoverer.discover("https://a.example") == ["https://rival.example", "http://b.example"]


def test_chat_responder_includes_history_and_phase() -> None:
    adapter = ScriptedAdapter('{"reply": "Compress the hero image."}')
    responder = LLMChatResponder(adapter, settings=_SETTINGS)
    history = [ConversationTurn(role="assistant", content="Performance narrative", phase=Phase.PERFORMANCE)]

    reply = responder.reply("https://a.example", Phase.PERFORMANCE, "What is slow?", history)

    prompt = adapter.calls[0][0]
    assert reply == "Compress the hero image."
    assert "reviewing the Performance phase" in prompt
    assert "[assistant] Performance narrative" in prompt
    assert "# QUESTION\n\nWhat is slow?" in prompt


def test_prompts_are_deterministic() -> None:
    builder = PhasePromptBuilder()
    metrics = {"b": 1, "a": 2}
    first = builder.build_score_prompt(Phase.PERFORMANCE, metrics)
    assert first == builder.build_score_prompt(Phase.PERFORMANCE, dict(reversed(list(metrics.items()))))
    assert "# PHASE: Performance" in first
