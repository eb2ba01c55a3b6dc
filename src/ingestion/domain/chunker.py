"""
Text Chunker
============

Splits extracted document text into overlapping, size-bounded chunks.

The chunker is a pure function: no I/O, no randomness, identical input
always yields identical output.

Algorithm:
1. Split the text into paragraphs on blank lines. Each separator stays
   attached to the paragraph before it, so paragraph spans tile the text.
2. Paragraphs longer than ``max_chars - overlap_chars`` are cut into
   pieces, preferring a whitespace boundary in the second half of a piece.
3. Pieces are accumulated into a buffer. When the next piece would push
   the buffer past ``max_chars``, the buffer is emitted and the next buffer
   starts with the last ``overlap_chars`` characters of the emitted chunk.

Every chunk's content is an exact slice of the input, and dropping the
first ``overlap_chars`` characters of each chunk and concatenating the rest
reconstructs the input.

Heuristics (best-effort display hints, not guarantees):
- Section titles: a paragraph shorter than 100 characters made only of
  upper-case letters, digits, whitespace and ``-:.`` is a header. It labels
  the chunk it lands in and every later chunk until the next header.
- Page numbers: ``char_start // chars_per_page + 1``. Extracted text has
  no reliable page geometry, so this is an estimate.
"""

import math
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from src.core import ValidationException

_PARAGRAPH_BREAK = re.compile(r"\n{2,}")
_HEADER_PATTERN = re.compile(r"^[A-Z0-9\s\-:\.]+$")
_HEADER_MAX_CHARS = 100

Span = Tuple[int, int]


@dataclass(frozen=True)
class ChunkingOptions:
    """Size parameters for chunking."""
    max_chars: int = 2000
    overlap_chars: int = 200
    chars_per_page: int = 3000

    def __post_init__(self):
        if self.max_chars <= 0:
            raise ValidationException("max_chars must be positive")
        if not 0 <= self.overlap_chars < self.max_chars:
            raise ValidationException("overlap_chars must be in [0, max_chars)")
        if self.chars_per_page <= 0:
            raise ValidationException("chars_per_page must be positive")

    @property
    def step(self) -> int:
        """Largest piece that still fits after an overlap prefix."""
        return self.max_chars - self.overlap_chars


@dataclass(frozen=True)
class TextChunk:
    """One contiguous slice of the document text."""
    sequence_index: int
    content: str
    char_start: int
    char_end: int
    overlap_chars: int
    token_count: int
    page_number: Optional[int] = None
    section_title: Optional[str] = None

    @property
    def new_content(self) -> str:
        """Content without the overlap copied from the previous chunk."""
        return self.content[self.overlap_chars:]


def estimate_tokens(text: str) -> int:
    """Rough token estimate of four characters per token."""
    return math.ceil(len(text) / 4)


def estimate_pages(text: str, chars_per_page: int = 3000) -> int:
    """Page count estimate used when the format has no page structure."""
    return max(1, math.ceil(len(text) / chars_per_page))


def detect_section_title(paragraph: str) -> Optional[str]:
    """Return the stripped paragraph if it looks like a section header."""
    candidate = paragraph.strip()
    if 0 < len(candidate) < _HEADER_MAX_CHARS and _HEADER_PATTERN.match(candidate):
        return candidate
    return None


def _paragraph_spans(text: str) -> Iterator[Span]:
    start = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        yield start, match.end()
        start = match.end()
    if start < len(text):
        yield start, len(text)


def _split_long(text: str, start: int, end: int, step: int) -> Iterator[Span]:
    pos = start
    while end - pos > step:
        cut = pos + step
        # Prefer breaking after whitespace in the second half of the piece
        window = text[pos + step // 2:cut]
        last_space = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"))
        if last_space >= 0:
            cut = pos + step // 2 + last_space + 1
        yield pos, cut
        pos = cut
    yield pos, end


def chunk_text(text: str, options: Optional[ChunkingOptions] = None) -> List[TextChunk]:
    """
    Split text into ordered, overlapping chunks.

    Args:
        text: Full extracted document text
        options: Size parameters (defaults: 2000 / 200 / 3000)

    Returns:
        Chunks with contiguous sequence indices from 0. Empty or
        whitespace-only input yields an empty list.
    """
    options = options or ChunkingOptions()
    if not text or not text.strip():
        return []

    chunks: List[TextChunk] = []
    buf_start: Optional[int] = None
    buf_end = 0
    buf_overlap = 0
    current_section: Optional[str] = None

    def emit(start: int, end: int, overlap: int, section: Optional[str]) -> None:
        content = text[start:end]
        chunks.append(TextChunk(
            sequence_index=len(chunks),
            content=content,
            char_start=start,
            char_end=end,
            overlap_chars=overlap,
            token_count=estimate_tokens(content),
            page_number=start // options.chars_per_page + 1,
            section_title=section,
        ))

    for para_start, para_end in _paragraph_spans(text):
        header = detect_section_title(text[para_start:para_end])

        for piece_start, piece_end in _split_long(text, para_start, para_end, options.step):
            piece_len = piece_end - piece_start
            if buf_start is not None and (buf_end - buf_start) + piece_len > options.max_chars:
                emit(buf_start, buf_end, buf_overlap, current_section)
                buf_overlap = min(options.overlap_chars, buf_end - buf_start)
                buf_start = buf_end - buf_overlap
            if buf_start is None:
                buf_start = piece_start
                buf_overlap = 0
            buf_end = piece_end

        if header is not None:
            current_section = header

    if buf_start is not None and buf_end > buf_start:
        emit(buf_start, buf_end, buf_overlap, current_section)

    return chunks
