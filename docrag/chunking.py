"""
Sliding-window chunking over words.

Words are scanned lazily from the text and only the current window is held in
memory, so chunking never builds the full word list of a document.
"""
import re
from bisect import bisect_right
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, Optional, Sequence

from .errors import ChunkingConfigError

_WORD = re.compile(r"\S+")


@dataclass(frozen=True)
class TextChunk:
    chunk_index: int
    page_number: int
    content: str


class ChunkSequence:
    """
    Lazy, finite, restartable sequence of chunks for one text.

    Each call to iter() starts a fresh scan from the first word.
    """

    def __init__(self, text: str, chunk_size: int, overlap: int,
                 page_word_offsets: Optional[Sequence[int]] = None) -> None:
        self._text = text
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._page_offsets = list(page_word_offsets or [])

    def __iter__(self) -> Iterator[TextChunk]:
        return self._generate()

    def _page_for(self, word_index: int) -> int:
        if not self._page_offsets:
            return 0
        return max(bisect_right(self._page_offsets, word_index) - 1, 0)

    def _generate(self) -> Iterator[TextChunk]:
        step = self._chunk_size - self._overlap
        window: Deque[str] = deque()
        chunk_index = 0
        start = 0        # word index of window[0]
        fresh = 0        # words appended since the last emitted chunk

        for match in _WORD.finditer(self._text):
            window.append(match.group())
            fresh += 1
            if len(window) == self._chunk_size:
                yield TextChunk(chunk_index, self._page_for(start), " ".join(window))
                chunk_index += 1
                for _ in range(step):
                    window.popleft()
                start += step
                fresh = 0

        # trailing partial window, only if it holds words no chunk has covered yet
        if fresh:
            yield TextChunk(chunk_index, self._page_for(start), " ".join(window))


class Chunker:
    """
    Split text into overlapping windows of `chunk_size` words.

    Consecutive chunks share `overlap` words. Chunking stops once a chunk has
    reached the last word, so a text of n words yields
    ceil((n - overlap) / (chunk_size - overlap)) chunks, or exactly one when
    0 < n <= chunk_size.
    """

    def __init__(self, chunk_size: int = 250, overlap: int = 30) -> None:
        if chunk_size <= 0:
            raise ChunkingConfigError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ChunkingConfigError(f"overlap must not be negative, got {overlap}")
        if chunk_size - overlap <= 0:
            raise ChunkingConfigError(
                f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk(self, text: str, page_word_offsets: Optional[Sequence[int]] = None) -> ChunkSequence:
        return ChunkSequence(text, self.chunk_size, self.overlap, page_word_offsets)
