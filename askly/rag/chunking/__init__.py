"""Document chunking strategies.

Provides different methods for splitting documents into chunks
suitable for embedding and retrieval.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Tried in order; the first one found in the back half of the window wins
DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "? ", "! ", " ")


@dataclass
class Chunk:
    """A document chunk ready for embedding."""

    index: int
    text: str
    start_char: int
    end_char: int
    metadata: dict = field(default_factory=dict)


class ChunkingStrategy(ABC):
    """Base class for chunking strategies."""

    @abstractmethod
    def chunk(self, text: str, metadata: dict | None = None) -> list[Chunk]:
        """Split text into chunks."""


def _trimmed_span(text: str, start: int, end: int) -> tuple[int, int]:
    """Shrink [start, end) so it neither starts nor ends with whitespace."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


class RecursiveCharacterChunker(ChunkingStrategy):
    """Fixed-size windows that prefer semantic break points.

    Each window is at most ``chunk_size`` characters. Inside a window the
    split point is the last paragraph break, else line break, else sentence
    end, else space, falling back to a hard cut. Consecutive chunks share up
    to ``overlap`` characters, and every character of the input (other than
    whitespace at a boundary) lands in at least one chunk.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        separators: tuple[str, ...] = DEFAULT_SEPARATORS,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(f"overlap ({overlap}) must be in [0, chunk_size={chunk_size})")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.separators = separators

    def _find_break(self, text: str, start: int, end: int) -> int:
        """Pick the end offset of the chunk starting at ``start``."""
        # Never break before the midpoint, so every chunk moves past the overlap
        lower = start + max(self.overlap + 1, self.chunk_size // 2)
        if lower >= end:
            return end

        for separator in self.separators:
            pos = text.rfind(separator, lower, end)
            if pos != -1:
                # Keep the separator with the chunk it terminates
                return min(pos + len(separator), end)

        return end

    def _next_start(self, text: str, start: int, end: int) -> int:
        """Start of the following chunk: ``overlap`` chars back, snapped to a word."""
        if self.overlap == 0:
            return end

        candidate = max(end - self.overlap, start + 1)
        if candidate > 0 and not text[candidate - 1].isspace():
            space = text.find(" ", candidate, end)
            if space != -1:
                candidate = space + 1
        return min(candidate, end)

    def chunk(self, text: str, metadata: dict | None = None) -> list[Chunk]:
        """Split text into ordered, overlapping chunks."""
        if not text or not text.strip():
            return []

        length = len(text)
        chunks: list[Chunk] = []

        if length <= self.chunk_size:
            start, end = _trimmed_span(text, 0, length)
            return [
                Chunk(
                    index=0,
                    text=text[start:end],
                    start_char=start,
                    end_char=end,
                    metadata=dict(metadata or {}),
                )
            ]

        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)
            if end < length:
                end = self._find_break(text, start, end)

            span_start, span_end = _trimmed_span(text, start, end)
            if span_end > span_start:
                chunks.append(
                    Chunk(
                        index=len(chunks),
                        text=text[span_start:span_end],
                        start_char=span_start,
                        end_char=span_end,
                        metadata=dict(metadata or {}),
                    )
                )

            if end >= length:
                break
            start = self._next_start(text, start, end)

        return chunks


def get_chunker(strategy: str = "recursive", **kwargs) -> ChunkingStrategy:
    """Get a chunking strategy by name.

    Args:
        strategy: Strategy name (only "recursive" is available)
        **kwargs: Strategy-specific parameters

    Returns:
        Configured chunking strategy
    """
    if strategy == "recursive":
        return RecursiveCharacterChunker(**kwargs)
    raise ValueError(f"Unknown chunking strategy: {strategy}")


__all__ = [
    "DEFAULT_SEPARATORS",
    "Chunk",
    "ChunkingStrategy",
    "RecursiveCharacterChunker",
    "get_chunker",
]
