"""
Document management API routes.
Handles document upload, processing, listing, and deletion.
"""
import os
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from .. import config, storage
from ..errors import DocumentBusyError, DocumentNotFoundError
from ..logging_config import logger
from ..schemas import ProcessDocumentBody
from ..services import document_service, ingest_service
from ..text_extraction import is_supported
from .deps import get_owner_id

router = APIRouter(prefix="/api", tags=["documents"])


def _file_size(f: UploadFile) -> int:
    f.file.seek(0, os.SEEK_END)
    size_bytes = f.file.tell()
    f.file.seek(0)  # reset for later reading
    return size_bytes


# ==================== Document Upload ====================

@router.post("/documents/upload")
async def upload_documents(files: List[UploadFile] = File(...), owner_id: str = Depends(get_owner_id)):
    """
    Upload one or more documents and process them.

    Supported formats: PDF, DOCX, TXT, MD, JSON

    Process:
    1. Validate every file (count, size, type) before storing anything
    2. Store each file and register it as `pending`
    3. Process all documents concurrently (extract → chunk → embed → store)

    Returns:
        Per-document status and chunk count
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    if len(files) > config.MAX_FILES_PER_UPLOAD:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files. Maximum {config.MAX_FILES_PER_UPLOAD} files per upload.",
        )

    sizes = []
    for f in files:
        if not is_supported(f.content_type or "", f.filename or ""):
            raise HTTPException(status_code=400, detail=f"Unsupported file type: {f.filename}")
        size_bytes = _file_size(f)
        if size_bytes > config.MAX_FILE_SIZE_BYTES:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"File '{f.filename}' is too large. "
                    f"Max size is {config.MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB."
                ),
            )
        sizes.append(size_bytes)

    documents = []
    for f, size_bytes in zip(files, sizes):
        logger.info("Storing file", filename=f.filename, content_type=f.content_type)
        storage_path = storage.save_upload(owner_id, f.filename, f.file)
        documents.append(
            document_service.create_document(
                owner_id, f.filename, f.content_type or "", size_bytes, storage_path
            )
        )

    results = await ingest_service.process_many([d["id"] for d in documents], owner_id)
    for doc, result in zip(documents, results):
        result["filename"] = doc["filename"]

    return {"ok": True, "documents": results}


@router.post("/process-document")
async def process_document(body: ProcessDocumentBody, owner_id: str = Depends(get_owner_id)):
    """(Re)process a stored document; returns the number of chunks."""
    try:
        chunks = await ingest_service.process_document(body.document_id, owner_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DocumentBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error("Processing error", document_id=body.document_id, exc_info=e)
        raise HTTPException(status_code=500, detail=str(e) or "Processing failed")
    return {"success": True, "chunks": chunks}


# ==================== Document Listing ====================

@router.get("/documents")
async def list_documents(owner_id: str = Depends(get_owner_id)):
    """
    Returns the caller's documents with status and chunk counts.
    """
    documents = document_service.list_documents(owner_id)
    logger.info("Listed documents", count=len(documents))
    return {"documents": documents}


# ==================== Document Deletion ====================

@router.delete("/documents/{doc_id}")
async def delete_document(doc_id: str, owner_id: str = Depends(get_owner_id)):
    """
    Deletes a document, its chunks (ON DELETE CASCADE) and its stored file.
    """
    try:
        storage_path = document_service.delete_document(doc_id, owner_id)
    except DocumentNotFoundError as e:
        logger.warning("Document not found for deletion", doc_id=doc_id)
        raise HTTPException(status_code=404, detail=str(e))

    if storage_path:
        storage.remove(storage_path)
    return {"ok": True, "deleted": doc_id}


@router.delete("/documents")
async def clear_documents(owner_id: str = Depends(get_owner_id)):
    """Deletes all of the caller's documents."""
    paths = document_service.delete_all_documents(owner_id)
    for path in paths:
        if path:
            storage.remove(path)
    return {"ok": True, "deleted": len(paths)}
