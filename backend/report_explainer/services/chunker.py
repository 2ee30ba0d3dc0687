"""Sentence-aligned text chunker with word-level overlap."""

from __future__ import annotations

import re

from report_explainer.models.rag import TextChunk

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

# Overlap budget is in characters; average English word plus space is ~5 chars.
_CHARS_PER_WORD = 5


def split_sentences(text: str) -> list[str]:
    """Split text at terminal punctuation followed by whitespace."""
    return [s for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def _overlap_words(chunk: str, overlap: int) -> list[str]:
    if overlap <= 0:
        return []
    # Any positive overlap carries at least one word
    count = max(1, overlap // _CHARS_PER_WORD)
    return chunk.split()[-count:]


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[TextChunk]:
    """Split document text into overlapping, sentence-aligned chunks.

    Sentences accumulate into a buffer. When the next sentence would push the
    buffer past ``chunk_size`` the buffer is closed as a chunk, and the next
    buffer starts with the trailing ``overlap // 5`` words of the closed chunk
    followed by that sentence (at least one word when ``overlap > 0``). A
    single sentence longer than ``chunk_size`` is kept whole. Overlap is best
    effort at word boundaries.
    """
    chunks: list[TextChunk] = []
    current = ""

    for sentence in split_sentences(text or ""):
        if current and len(current) + len(sentence) > chunk_size:
            closed = current.strip()
            chunks.append(TextChunk(text=closed, index=len(chunks)))
            current = " ".join([*_overlap_words(closed, overlap), sentence.strip()])
        else:
            current = f"{current} {sentence.strip()}" if current else sentence.strip()

    if current.strip():
        chunks.append(TextChunk(text=current.strip(), index=len(chunks)))

    return chunks
