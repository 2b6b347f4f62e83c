# =============================================================================
# Word-Count Text Chunker
# =============================================================================
#
# Splits a document into chunks of at most `chunk_size` whitespace-delimited
# words. Every word is followed by exactly one space, so a chunk always ends
# with a trailing space. Words are never split and a chunk never spans two
# documents.
#
# ALGORITHM:
# 1. Stream the document line by line, tokenising each line on whitespace
# 2. Append each token + " " to a buffer
# 3. When the buffer holds exactly `chunk_size` tokens, emit it and reset
# 4. At end of stream, emit whatever remains in the buffer
#
# A document may be a str, bytes, or any readable stream (text or binary).
# Binary input is decoded as UTF-8.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import IO

from chatbot.errors import ReadError

logger = logging.getLogger(__name__)

Document = str | bytes | IO[str] | IO[bytes]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def chunk_document(document: Document, chunk_size: int) -> list[str]:
    """
    Split a single document into word-count chunks.

    Args:
        document: Text, bytes, or a readable stream. Streams are consumed.
        chunk_size: Maximum number of words per chunk (>= 1).

    Returns:
        Chunks in document order. An empty document yields [].

    Raises:
        ValueError: If chunk_size is smaller than 1.
        ReadError: If the stream cannot be fully read or decoded.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    chunks: list[str] = []
    buffer: list[str] = []

    try:
        for line in _iter_lines(document):
            for token in line.split():
                buffer.append(token + " ")
                if len(buffer) == chunk_size:
                    chunks.append("".join(buffer))
                    buffer = []
    except Exception as exc:
        # Any failure while consuming the stream: decode errors, closed
        # files, truncated compressed streams (EOFError) and the like
        raise ReadError(f"could not scan data: {exc}") from exc

    if buffer:
        chunks.append("".join(buffer))

    logger.debug(
        "Chunked document into %d chunks (chunk_size=%d)",
        len(chunks), chunk_size,
    )
    return chunks


def chunk_documents(documents: Sequence[Document], chunk_size: int) -> list[str]:
    """Chunk each document independently and concatenate the results."""
    chunks: list[str] = []
    for document in documents:
        chunks.extend(chunk_document(document, chunk_size))
    return chunks


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _iter_lines(document: Document) -> Iterator[str]:
    """Yield the document as text, one line at a time where possible."""
    if isinstance(document, str):
        yield document
        return

    if isinstance(document, (bytes, bytearray)):
        yield bytes(document).decode("utf-8")
        return

    # Splitting on b"\n" never cuts through a multi-byte UTF-8 sequence,
    # so binary streams can be decoded line by line.
    for line in document:
        if isinstance(line, (bytes, bytearray)):
            yield bytes(line).decode("utf-8")
        else:
            yield line
