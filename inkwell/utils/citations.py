"""
Citation marker handling for generated answers.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Union

from ..schemas import Source

# [1], [12]; not [0], [01], [ 1] or [-1]
CITATION_MARKER = re.compile(r"\[([1-9]\d*)\]")

SourceLike = Union[Source, Dict]


@dataclass
class Segment:
    """A run of literal text, or a citation marker bound to its source."""

    text: str
    source: Optional[SourceLike] = None

    @property
    def is_citation(self) -> bool:
        return self.source is not None


def _number(source: SourceLike) -> int:
    return source["number"] if isinstance(source, dict) else source.number


def resolve_citations(text: str, sources: Sequence[SourceLike]) -> List[Segment]:
    """
    Split answer text into literal and citation segments.

    Markers whose number matches no source stay in the literal text.

    Example:
        >>> resolve_citations("A[1]B[2][3]C", sources_1_and_2)
        [Segment("A"), Segment("[1]", s1), Segment("B"), Segment("[2]", s2), Segment("[3]C")]
    """
    by_number = {_number(s): s for s in sources}
    segments: List[Segment] = []
    literal = ""
    position = 0

    for match in CITATION_MARKER.finditer(text):
        source = by_number.get(int(match.group(1)))
        literal += text[position:match.start()]
        position = match.end()
        if source is None:
            literal += match.group(0)
            continue
        if literal:
            segments.append(Segment(literal))
            literal = ""
        segments.append(Segment(match.group(0), source))

    literal += text[position:]
    if literal:
        segments.append(Segment(literal))
    return segments


def cited_sources(text: str, sources: Sequence[SourceLike]) -> List[SourceLike]:
    """Distinct sources actually cited in the text, in order of first mention."""
    seen = {}
    for segment in resolve_citations(text, sources):
        if segment.is_citation:
            seen.setdefault(_number(segment.source), segment.source)
    return list(seen.values())


def link_citations(
    text: str,
    sources: Sequence[SourceLike],
    render: Callable[[SourceLike], str] = None,
) -> str:
    """
    Replace resolvable markers with rendered links.

    The default renderer produces markdown anchors like `[[1]](#source-1)`.
    """
    render = render or (lambda s: f"[[{_number(s)}]](#source-{_number(s)})")
    return "".join(
        render(segment.source) if segment.is_citation else segment.text
        for segment in resolve_citations(text, sources)
    )
