"""
Text normalization applied before chunking.

Extracted text (PDF output in particular) arrives with Windows line endings,
ragged spacing, page numbers and lines hard-wrapped in the middle of a
sentence. `preprocess` cleans that up without touching paragraph structure,
and is idempotent so re-running it on stored text is harmless.
"""
import re

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_PAGE_ARTIFACT = re.compile(
    r"^[ ]?(?:\d{1,4}|-[ ]?\d{1,4}[ ]?-|page[ ]\d{1,4}(?:[ ]of[ ]\d{1,4})?)$\n?",
    re.IGNORECASE | re.MULTILINE,
)
_BROKEN_LINE = re.compile(r"(?<=[a-z,])\n(?=[a-z])")
_EXCESS_BLANKS = re.compile(r"\n{3,}")


def preprocess(text: str) -> str:
    """
    Normalize raw document text.

    Args:
        text: Raw extracted text

    Returns:
        Cleaned text; empty string for empty or whitespace-only input
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")

    # One space per whitespace run, nothing dangling at line ends
    lines = [_HORIZONTAL_WS.sub(" ", line).rstrip() for line in text.split("\n")]
    text = "\n".join(lines)

    text = _PAGE_ARTIFACT.sub("", text)
    text = _BROKEN_LINE.sub(" ", text)
    text = _EXCESS_BLANKS.sub("\n\n", text)

    return text.strip()
