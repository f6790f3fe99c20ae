"""Sliding-window chunker — fixed character windows with overlap.

Window ``i`` spans ``[i * step, i * step + chunk_size)`` with
``step = chunk_size - overlap``; the last window is truncated at the end of the
text and no window starts after one has already reached the end. Segments are
never stripped, so dropping the first ``overlap`` characters of every window
after the first and concatenating reproduces the input exactly.
"""

from __future__ import annotations

from kbcore.errors import InvalidChunkConfig

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 100


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[str]:
    """Split *text* into ordered overlapping windows. Pure, deterministic, no I/O.

    Raises:
        InvalidChunkConfig: If ``chunk_size < 1`` or ``overlap`` is not in
            ``[0, chunk_size)``.
    """
    _check_config(chunk_size, overlap)
    if not text:
        return []

    step = chunk_size - overlap
    length = len(text)
    windows: list[str] = []
    pos = 0
    while pos < length:
        end = min(pos + chunk_size, length)
        windows.append(text[pos:end])
        if end >= length:
            break
        pos += step
    return windows


def _check_config(chunk_size: int, overlap: int) -> None:
    if chunk_size < 1:
        raise InvalidChunkConfig(f"chunk_size must be >= 1, got {chunk_size}")
    if overlap < 0:
        raise InvalidChunkConfig(f"overlap must be >= 0, got {overlap}")
    if overlap >= chunk_size:
        raise InvalidChunkConfig(
            f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
        )


class TextChunker:
    """Chunker bound to one (chunk_size, overlap) configuration.

    Default: 1000 characters / 100 characters overlap.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> None:
        _check_config(chunk_size, overlap)
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> list[str]:
        return chunk_text(text, self.chunk_size, self.overlap)
