"""LLM adapters for phase analysis.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for testing.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from app.config import LLMSettings


class LLMAdapterError(Exception):
    """Raised when the underlying LLM transport fails."""


class BaseLLMAdapter(ABC):
    """Abstract base for all LLM adapters."""

    @abstractmethod
    def generate(self, prompt: str, image_base64: Optional[str] = None) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: The fully formatted prompt string.
            image_base64: Optional base64 PNG attached to the request.

        Returns:
            Raw string response from the model (expected to be JSON).

        Raises:
            LLMAdapterError: If the request could not be completed.
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Configured for non-streaming JSON output with low temperature and a
    hard request timeout.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1024,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        from openai import OpenAI

        client_kwargs: dict = {"api_key": api_key, "timeout": timeout_seconds, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens

    def generate(self, prompt: str, image_base64: Optional[str] = None) -> str:
        """Call the OpenAI chat completion API.

        Args:
            prompt: The fully formatted prompt string.
            image_base64: Optional base64 PNG sent as an image part.

        Returns:
            Raw string content from the model response.
        """
        from openai import OpenAIError

        content: object = prompt
        if image_base64:
            content = [
                {"type": "text", "text": prompt},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/png;base64,{image_base64}"},
                },
            ]

        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": content}],
                temperature=0.2,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
                stream=False,
            )
        except OpenAIError as exc:
            raise LLMAdapterError(f"{type(exc).__name__}: {exc}") from exc
        return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Fixed mock response used for local testing. Every output contract reads
# only its own keys from this object.
# ---------------------------------------------------------------------------
_MOCK_RESPONSE = {
    "narrative": "Mock analysis for testing purposes. The page loads reliably and the layout is consistent.",
    "score": 72,
    "competitors": [
        "https://competitor-one.example",
        "https://competitor-two.example",
    ],
    "reply": "Mock reply for testing purposes.",
}

_MOCK_RESPONSE_JSON = json.dumps(_MOCK_RESPONSE, indent=2)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter that returns a fixed valid JSON response.

    Used for local testing and CI pipelines where no LLM API
    is available.
    """

    def __init__(self, response: Optional[str] = None) -> None:
        self._response = response if response is not None else _MOCK_RESPONSE_JSON
        self.prompts: list[str] = []

    def generate(self, prompt: str, image_base64: Optional[str] = None) -> str:
        """Return a fixed JSON string regardless of input.

        Args:
            prompt: Recorded for inspection, otherwise ignored.
            image_base64: Ignored.

        Returns:
            A valid JSON string satisfying every analysis output contract.
        """
        self.prompts.append(prompt)
        return self._response


def build_adapter(settings: LLMSettings) -> BaseLLMAdapter:
    """Instantiate the adapter selected by LLM_ADAPTER.

    LLM_ADAPTER=mock   -> MockLLMAdapter  (testing, no API key required)
    LLM_ADAPTER=openai -> OpenAILLMAdapter (default)
    """
    if settings.adapter == "mock":
        return MockLLMAdapter()

    return OpenAILLMAdapter(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout_seconds=settings.timeout_seconds,
    )
