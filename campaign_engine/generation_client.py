"""
campaign_engine/generation_client.py -- Text generation facade.

The single AI boundary of the engine.  Analyzers call::

    result = await client.generate(prompt, temperature=0.3)
    if result.success:
        use(result.content)

Two backends, detected at construction:

    1. Anthropic SDK (async client) -- used when an API key is available
    2. Offline mode -- every call returns a failed result explaining why

Expected API failures (rate limits, timeouts, bad status codes) come back as
``GenerationResult(success=False, error=...)``.  Anything else propagates;
callers catch it per call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable

import anthropic

logger = logging.getLogger(__name__)

MODEL_ENV_VAR = "CAMPAIGN_ENGINE_MODEL"
API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"


class BackendType(Enum):
    SDK = auto()
    OFFLINE = auto()


@dataclass
class GenerationResult:
    """Outcome of one generation call."""
    success: bool
    content: str = ""
    error: str = ""
    usage: dict[str, int] | None = None


Generate = Callable[..., Awaitable[GenerationResult]]


class GenerationClient:
    """Facade over the Anthropic messages API.

    Parameters
    ----------
    api_key : str, optional
        Defaults to the ``ANTHROPIC_API_KEY`` environment variable.
    model : str, optional
        Defaults to ``CAMPAIGN_ENGINE_MODEL`` or :attr:`DEFAULT_MODEL`.
    timeout : int, optional
        Request timeout in seconds.
    client : anthropic.AsyncAnthropic, optional
        Pre-built client (mainly for tests).  Forces the SDK backend.
    """

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    DEFAULT_TIMEOUT = 120  # seconds
    DEFAULT_MAX_TOKENS = 1024

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
        client: Any = None,
    ):
        self._api_key = api_key if api_key is not None else os.environ.get(API_KEY_ENV_VAR, "")
        self._model = model or os.environ.get(MODEL_ENV_VAR) or self.DEFAULT_MODEL
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client
        self._backend = BackendType.OFFLINE
        self._detect_backend()

    @property
    def backend(self) -> BackendType:
        return self._backend

    @property
    def is_online(self) -> bool:
        return self._backend != BackendType.OFFLINE

    @property
    def model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # Backend detection
    # ------------------------------------------------------------------

    def _detect_backend(self) -> None:
        if self._client is not None:
            self._backend = BackendType.SDK
            return

        if not self._api_key:
            self._backend = BackendType.OFFLINE
            logger.info("Generation backend: offline mode (no API key)")
            return

        try:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key, timeout=self._timeout)
        except anthropic.AnthropicError:
            logger.warning("Could not create Anthropic client, staying offline", exc_info=True)
            self._backend = BackendType.OFFLINE
            return

        self._backend = BackendType.SDK
        logger.info("Generation backend: Anthropic SDK (%s)", self._model)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        system_prompt: str = "",
    ) -> GenerationResult:
        """Generate a completion for *prompt*."""
        if self._backend == BackendType.OFFLINE:
            return GenerationResult(
                success=False,
                error=(
                    "AI generation is offline. Set the ANTHROPIC_API_KEY "
                    "environment variable to enable it."
                ),
            )

        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self.DEFAULT_MAX_TOKENS,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            request["system"] = system_prompt

        try:
            response = await self._client.messages.create(**request)
        except anthropic.APIError as exc:
            logger.warning("Generation request failed: %s", exc)
            return GenerationResult(success=False, error=str(exc))

        text = "".join(
            getattr(block, "text", "")
            for block in response.content
            if getattr(block, "type", "") == "text"
        )
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
            }
        return GenerationResult(success=True, content=text, usage=usage)
