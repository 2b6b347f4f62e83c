"""Error taxonomy for ingestion and retrieval.

Every step wraps the failure it observed in one of the kinds below, adding
which step failed to the message and chaining the original exception.
"""

from __future__ import annotations


class ChatbotError(Exception):
    """Base exception for chatbot pipeline failures."""


class ReadError(ChatbotError):
    """A document stream could not be fully read or decoded."""


class ProviderError(ChatbotError):
    """An embedding or chat-completion request failed."""


class StorageError(ChatbotError):
    """A vector-store write or query failed."""
