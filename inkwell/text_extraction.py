from pathlib import Path
from typing import Tuple

from pypdf import PdfReader
from docx import Document as DocxDocument

from .errors import UnsupportedFileTypeError

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MIME_TYPES = (PDF_MIME, DOCX_MIME, "text/plain", "text/markdown", "application/json")
SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".txt", ".md", ".json")


def read_text_from_pdf(file_path: str) -> str:
    pdf = PdfReader(file_path)
    parts = []
    for page in pdf.pages:
        parts.append(page.extract_text() or "")
    return "\n".join(parts)


def read_text_from_docx(file_path: str) -> str:
    """
    Extract text from DOCX file including both paragraphs and tables.
    Tables are converted to readable text format.
    """
    doc = DocxDocument(file_path)
    parts = []

    for para in doc.paragraphs:
        text = para.text.strip()
        if text:
            parts.append(text)

    for table in doc.tables:
        table_text = extract_table_text(table)
        if table_text:
            parts.append(table_text)

    return "\n\n".join(parts)


def extract_table_text(table) -> str:
    """
    Convert a DOCX table to readable text format.
    Each row is preserved with clear separators.
    """
    lines = []

    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]

        # Skip completely empty rows
        if not any(cells):
            continue

        lines.append(" | ".join(cells))

    return "\n".join(lines)


def read_text_from_txt(file_path: str, encoding="utf-8") -> str:
    with open(file_path, "r", encoding=encoding, errors="ignore") as f:
        return f.read()


def is_supported(mime: str, filename: str) -> bool:
    """Check whether a file can be turned into text."""
    mime = (mime or "").lower()
    name = (filename or "").lower()
    return (
        mime.startswith("text/")
        or any(m in mime for m in SUPPORTED_MIME_TYPES)
        or name.endswith(SUPPORTED_EXTENSIONS)
    )


def read_any(file_path: str, mime: str, filename: str) -> Tuple[str, str]:
    """
    Extract text from a stored file.

    Returns:
        (text, kind) where kind is "pdf", "docx" or "txt"

    Raises:
        UnsupportedFileTypeError: If the type is neither PDF, DOCX nor text
    """
    name = (filename or Path(file_path).name).lower()
    mime = (mime or "").lower()
    if name.endswith(".pdf") or mime == PDF_MIME:
        return read_text_from_pdf(file_path), "pdf"
    if name.endswith(".docx") or mime == DOCX_MIME:
        return read_text_from_docx(file_path), "docx"
    if is_supported(mime, name):
        return read_text_from_txt(file_path), "txt"
    raise UnsupportedFileTypeError(f"Unsupported file type: {mime or 'unknown'} ({filename})")
