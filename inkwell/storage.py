"""
Local stand-in for the document storage bucket.
Uploaded bytes are kept under STORAGE_DIR/<owner>/<uuid>-<filename>.
"""
import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

from . import config
from .logging_config import logger


def _safe_name(filename: str) -> str:
    name = Path(filename or "").name.replace(" ", "_")
    # Empty and dot-only names would not stay inside the storage tree
    return name if name.strip(".") else "document"


def save_upload(owner_id: str, filename: str, fileobj: BinaryIO) -> str:
    """
    Copy an uploaded file into storage.

    Returns:
        Storage path relative to STORAGE_DIR
    """
    relative = Path(_safe_name(owner_id)) / f"{uuid.uuid4().hex}-{_safe_name(filename)}"
    target = config.STORAGE_DIR / relative
    target.parent.mkdir(parents=True, exist_ok=True)

    with open(target, "wb") as out:
        shutil.copyfileobj(fileobj, out)

    logger.debug("Stored upload", path=str(relative), owner_id=owner_id)
    return str(relative)


def resolve(storage_path: str) -> str:
    """Absolute filesystem path for a storage reference."""
    return str(config.STORAGE_DIR / storage_path)


def remove(storage_path: str) -> None:
    """Delete a stored file; missing files are ignored."""
    try:
        os.remove(resolve(storage_path))
    except FileNotFoundError:
        logger.warning("Stored file already gone", path=storage_path)
