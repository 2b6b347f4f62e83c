# =============================================================================
# Provider Abstraction — Embeddings + Chat Completions
# =============================================================================
#
# The chatbot talks to one external provider for two things: turning text
# into vectors, and turning a prompt into an answer. Both go through the
# `Provider` protocol so the pipelines can be exercised with mocks.
#
# ARCHITECTURE:
#   Provider (Protocol)
#   ├── OpenAIProvider          — any OpenAI-compatible API (AsyncOpenAI)
#   │   ├── create_embedding()
#   │   └── create_chat_completion()
#   └── get_provider()          — lazy singleton, reads from config
#
# No retry logic lives here. SDK errors are surfaced as ProviderError.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import openai

from chatbot.config import settings
from chatbot.errors import ProviderError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingResponse:
    """Vector for a single input text plus the tokens it consumed."""

    vector: list[float]
    total_tokens: int


@dataclass(frozen=True)
class Message:
    """One chat message. Role is "system", "user" or "assistant"."""

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Choice:
    content: str


@dataclass
class ChatCompletion:
    """Completion choices in the order the provider returned them."""

    choices: list[Choice] = field(default_factory=list)
    model: str = ""


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class Provider(Protocol):
    """
    Embedding/chat provider interface.

    Implementations must be safe to call concurrently from many tasks.
    """

    async def create_embedding(self, model: str, text: str) -> EmbeddingResponse:
        """
        Embed a single text.

        Raises:
            ProviderError: On transport, quota or model errors.
        """
        ...

    async def create_chat_completion(
        self,
        model: str,
        messages: Sequence[Message],
    ) -> ChatCompletion:
        """
        Request a chat completion for an ordered list of messages.

        Raises:
            ProviderError: On transport, quota or model errors.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation: OpenAI-compatible
# ---------------------------------------------------------------------------


class OpenAIProvider:
    """
    Provider backed by the OpenAI SDK.

    Works with any OpenAI-compatible endpoint by setting OPENAI_BASE_URL.
    The async client manages its own connection pool and is shared by all
    pipeline tasks.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        if client is not None:
            self._client = client
            return

        resolved_key = api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for the provider. "
                "Set OPENAI_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.openai_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)

        logger.info(
            "Initialized OpenAIProvider (base_url=%s)",
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def create_embedding(self, model: str, text: str) -> EmbeddingResponse:
        """Embed `text` with `model`."""
        try:
            response = await self._client.embeddings.create(model=model, input=text)
        except openai.OpenAIError as exc:
            raise ProviderError(f"embedding request failed: {exc}") from exc

        if not response.data:
            raise ProviderError(f"embedding response for model {model} had no data")

        usage = response.usage
        return EmbeddingResponse(
            vector=list(response.data[0].embedding),
            total_tokens=usage.total_tokens if usage else 0,
        )

    async def create_chat_completion(
        self,
        model: str,
        messages: Sequence[Message],
    ) -> ChatCompletion:
        """Generate a completion for `messages` with `model`."""
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[m.to_dict() for m in messages],
            )
        except openai.OpenAIError as exc:
            raise ProviderError(f"completion request failed: {exc}") from exc

        return ChatCompletion(
            choices=[
                Choice(content=choice.message.content or "")
                for choice in response.choices
            ],
            model=response.model or model,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: OpenAIProvider | None = None


def get_provider() -> OpenAIProvider:
    """Return the process-wide provider, creating it on first use."""
    global _provider
    if _provider is None:
        _provider = OpenAIProvider()
    return _provider
