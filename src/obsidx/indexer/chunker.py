"""Fixed-window chunking over raw character length."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TextSpan:
    """A half-open character range ``[start, end)`` and its text."""

    start: int
    end: int
    text: str


def chunk_text(content: str, max_chars: int, overlap: int) -> list[TextSpan]:
    """Slide a ``max_chars`` window across *content*.

    Each step advances by ``max_chars - overlap``; the last window is cut at
    the end of the content. Windows ignore word and sentence boundaries.
    Empty content yields no spans.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if not 0 <= overlap < max_chars:
        raise ValueError(f"overlap must be in [0, {max_chars}), got {overlap}")

    length = len(content)
    if length == 0:
        return []
    if length <= max_chars:
        return [TextSpan(0, length, content)]

    step = max_chars - overlap
    spans: list[TextSpan] = []
    start = 0
    while True:
        end = min(start + max_chars, length)
        spans.append(TextSpan(start, end, content[start:end]))
        if end == length:
            break
        start += step
    return spans
