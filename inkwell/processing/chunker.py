"""
Recursive, structure-aware text chunking.

Text is split with the coarsest separator that actually occurs in it
(headers, then rules, blank lines, sentences, ... down to single characters),
pieces that are still too long are split again with the finer separators, and
the resulting pieces are greedily packed back into chunks of at most
`chunk_size` characters. Each chunk after the first starts with a short tail
of its predecessor so that context carries across chunk boundaries.

Separators are never dropped: every cut keeps the separator text on one side
of the boundary, so concatenating the pieces of a span gives back the span.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .. import config
from ..logging_config import logger
from .preprocess import preprocess

# How far into the overlap tail we look for a clean place to start
OVERLAP_SEARCH_WINDOW = 50

_SENTENCE_END = re.compile(r"[.!?]+[\"')\]]*\s+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Separator:
    """One entry of the separator priority table.

    Text is cut at the end of every match. Patterns that should start the
    following piece (headers, rules, list items) match only the newlines in
    front of them and look ahead for the marker itself.
    """

    name: str
    pattern: Optional["re.Pattern[str]"]
    structural: bool = False

    def split(self, text: str) -> List[str]:
        if self.pattern is None:
            return [text]
        cuts = sorted({m.end() for m in self.pattern.finditer(text) if 0 < m.end() < len(text)})
        if not cuts:
            return [text]
        bounds = [0] + cuts + [len(text)]
        return [text[a:b] for a, b in zip(bounds, bounds[1:])]


# Coarsest to finest. The last entry has no pattern and means "cut by length".
SEPARATORS: Tuple[Separator, ...] = (
    Separator("section_header", re.compile(r"\n+(?=#{1,6}[ \t])"), structural=True),
    Separator("horizontal_rule", re.compile(r"\n+(?=(?:-{3,}|\*{3,}|_{3,})[ \t]*(?:\n|$))"), structural=True),
    Separator("multi_blank_line", re.compile(r"\n{3,}")),
    Separator("paragraph", re.compile(r"\n\n")),
    Separator("sentence", re.compile(r"[.!?]+[\"')\]]*\s+")),
    Separator("clause", re.compile(r"[;:,]\s+")),
    Separator("list_marker", re.compile(r"\n(?=[ \t]*(?:[-*•]|\d{1,3}[.)])[ \t])"), structural=True),
    Separator("newline", re.compile(r"\n")),
    Separator("word", re.compile(r" +")),
    Separator("character", None),
)


@dataclass
class TextChunk:
    """A chunk of text with its position in the preprocessed document."""

    content: str
    index: int
    char_start: int
    char_end: int
    overlap: int = 0  # leading characters repeated from the previous chunk


def force_split(text: str, chunk_size: int) -> List[str]:
    """Cut text into pieces of at most chunk_size, preferring the last space."""
    pieces = []
    while len(text) > chunk_size:
        cut = text.rfind(" ", 0, chunk_size)
        cut = cut + 1 if cut > 0 else chunk_size
        pieces.append(text[:cut])
        text = text[cut:]
    if text:
        pieces.append(text)
    return pieces


def split_recursive(text: str, chunk_size: int, separators: Sequence[Separator] = SEPARATORS) -> List[str]:
    """
    Split text into pieces no longer than chunk_size.

    Uses the first separator in `separators` that matches, then recurses into
    oversized pieces with the separators that follow it.
    """
    if len(text) <= chunk_size:
        return [text]

    for position, separator in enumerate(separators):
        if separator.pattern is None:
            return force_split(text, chunk_size)

        pieces = separator.split(text)
        if len(pieces) == 1:
            continue

        finer = separators[position + 1:]
        result = []
        for piece in pieces:
            if len(piece) > chunk_size:
                result.extend(split_recursive(piece, chunk_size, finer))
            else:
                result.append(piece)
        return result

    return force_split(text, chunk_size)


class TextChunker:
    """Recursive character chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
        preserve_structure: bool = True,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum size of each chunk in characters (default from config)
            chunk_overlap: Characters carried over from the previous chunk (default from config)
            preserve_structure: Split on headers, rules and list markers first
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        if self.chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")

        # Overlap >= chunk size would stop the merge pass from making progress
        self.chunk_overlap = max(0, min(overlap, self.chunk_size - 1))
        if self.chunk_overlap != overlap:
            logger.warning(
                "Clamped chunk overlap",
                requested=overlap,
                chunk_overlap=self.chunk_overlap,
                chunk_size=self.chunk_size,
            )

        self.preserve_structure = preserve_structure
        self.separators = tuple(
            s for s in SEPARATORS if preserve_structure or not s.structural
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Preprocess text and split it into overlapping chunks.

        Args:
            text: Raw document text

        Returns:
            List of TextChunk objects, indexed 0..N-1
        """
        text = preprocess(text)
        if not text:
            return []

        if len(text) <= self.chunk_size:
            return [TextChunk(content=text, index=0, char_start=0, char_end=len(text))]

        pieces = split_recursive(text, self.chunk_size, self.separators)
        merged = self._merge(pieces)
        chunks = self._locate(text, merged)

        logger.debug(
            "Chunked text",
            text_length=len(text),
            pieces=len(pieces),
            chunk_count=len(chunks),
        )
        return chunks

    def _merge(self, pieces: List[str]) -> List[Tuple[str, int]]:
        """Greedily pack pieces into chunks; returns (content, overlap) pairs."""
        merged = []
        current, overlap = "", 0

        for piece in pieces:
            if current and len(current) + len(piece) > self.chunk_size:
                merged.append((current, overlap))
                current = self._overlap_seed(current, room=self.chunk_size - len(piece))
                overlap = len(current)
            current += piece

        if current:
            merged.append((current, overlap))
        return merged

    def _overlap_seed(self, closed: str, room: int) -> str:
        """Tail of the closed chunk used to start the next one."""
        limit = min(self.chunk_overlap, room, len(closed))
        if limit <= 0:
            return ""

        tail = closed[-limit:]
        window = tail[:OVERLAP_SEARCH_WINDOW]

        match = _SENTENCE_END.search(window)
        if match and match.end() < len(tail):
            return tail[match.end():]

        # Already starts on a word
        if limit == len(closed) or closed[-limit - 1].isspace():
            return tail

        match = _WHITESPACE.search(window)
        if match and match.end() < len(tail):
            return tail[match.end():]
        return tail

    @staticmethod
    def _locate(text: str, merged: List[Tuple[str, int]]) -> List[TextChunk]:
        chunks = []
        previous_end = 0
        for index, (content, overlap) in enumerate(merged):
            start = text.find(content, max(0, previous_end - overlap))
            if start < 0:
                start = previous_end
            chunks.append(
                TextChunk(
                    content=content,
                    index=index,
                    char_start=start,
                    char_end=start + len(content),
                    overlap=overlap,
                )
            )
            previous_end = start + len(content)
        return chunks


def chunk_text(
    text: str,
    chunk_size: int = None,
    chunk_overlap: int = None,
    preserve_structure: bool = True,
) -> List[TextChunk]:
    """Chunk text with a one-off chunker (convenience function)."""
    chunker = TextChunker(chunk_size, chunk_overlap, preserve_structure)
    return chunker.chunk_text(text)
