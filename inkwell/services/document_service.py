"""
Document metadata service.
Handles document records, status transitions and the processing lease.
"""
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import bindparam, text

from .. import config
from ..db import engine
from ..errors import DocumentBusyError, DocumentNotFoundError
from ..logging_config import logger

UNKNOWN_DOCUMENT = "Unknown document"


def create_document(
    owner_id: str,
    filename: str,
    mime_type: str,
    size_bytes: int,
    storage_path: str,
) -> Dict[str, Any]:
    """
    Register an uploaded document in `pending` state.

    Returns:
        The new document row
    """
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                INSERT INTO documents (id, owner_id, filename, mime_type, size_bytes, status, storage_path)
                VALUES (:id, :owner, :fn, :mt, :sz, 'pending', :path)
                RETURNING id, owner_id, filename, mime_type, size_bytes, status, storage_path, created_at
            """),
            {
                "id": str(uuid.uuid4()),
                "owner": owner_id,
                "fn": filename,
                "mt": mime_type,
                "sz": size_bytes,
                "path": storage_path,
            },
        ).mappings().one()
    logger.info("Created document", document_id=row["id"], filename=filename)
    return dict(row)


def get_document(document_id: str, owner_id: str) -> Dict[str, Any]:
    """
    Fetch one of the owner's documents.

    Raises:
        DocumentNotFoundError: If it does not exist or belongs to someone else
    """
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                SELECT id, owner_id, filename, mime_type, size_bytes, status, storage_path,
                       error_message, created_at, updated_at
                FROM documents
                WHERE id = :id AND owner_id = :owner
            """),
            {"id": document_id, "owner": owner_id},
        ).mappings().first()
    if not row:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return dict(row)


def list_documents(owner_id: str) -> List[Dict[str, Any]]:
    """Owner's documents with chunk counts, newest first."""
    with engine.begin() as conn:
        rows = conn.execute(
            text("""
                SELECT d.id,
                       d.filename,
                       d.mime_type,
                       d.size_bytes,
                       d.status,
                       d.error_message,
                       d.created_at,
                       COUNT(c.id) AS num_chunks
                FROM documents d
                LEFT JOIN chunks c ON c.document_id = d.id
                WHERE d.owner_id = :owner
                GROUP BY d.id
                ORDER BY d.created_at DESC
            """),
            {"owner": owner_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def get_ready_document_count(owner_id: str) -> int:
    with engine.begin() as conn:
        return conn.execute(
            text("SELECT COUNT(*) FROM documents WHERE owner_id = :owner AND status = 'ready'"),
            {"owner": owner_id},
        ).scalar_one()


def get_filenames(document_ids: Iterable[str]) -> Dict[str, str]:
    """Map document ids to filenames in one query; unknown ids are simply absent."""
    ids = sorted(set(document_ids))
    if not ids:
        return {}
    stmt = text("SELECT id, filename FROM documents WHERE id IN :ids").bindparams(
        bindparam("ids", expanding=True)
    )
    with engine.begin() as conn:
        rows = conn.execute(stmt, {"ids": ids}).all()
    return {row.id: row.filename for row in rows}


def delete_document(document_id: str, owner_id: str) -> Optional[str]:
    """
    Delete a document; its chunks cascade.

    Returns:
        The storage path of the removed file, if any

    Raises:
        DocumentNotFoundError: If the owner has no such document
    """
    with engine.begin() as conn:
        row = conn.execute(
            text("DELETE FROM documents WHERE id = :id AND owner_id = :owner RETURNING storage_path"),
            {"id": document_id, "owner": owner_id},
        ).first()
    if not row:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    logger.info("Document deleted", document_id=document_id)
    return row.storage_path


def delete_all_documents(owner_id: str) -> List[Optional[str]]:
    """Delete every document of an owner; returns their storage paths."""
    with engine.begin() as conn:
        rows = conn.execute(
            text("DELETE FROM documents WHERE owner_id = :owner RETURNING storage_path"),
            {"owner": owner_id},
        ).all()
    logger.info("Cleared documents", owner_id=owner_id, count=len(rows))
    return [row.storage_path for row in rows]


class DocumentLease:
    """
    Exclusive right to rebuild one document's chunks.

    Acquiring moves the document to `processing`; a lease that outlives
    LEASE_SECONDS is treated as abandoned and may be taken over. Releasing
    only succeeds while the token still matches, so a worker whose lease was
    taken over cannot overwrite the new owner's status.
    """

    def __init__(self, document_id: str, owner_id: str, ttl_seconds: int = None):
        self.document_id = document_id
        self.owner_id = owner_id
        self.ttl_seconds = config.LEASE_SECONDS if ttl_seconds is None else ttl_seconds
        self.token = None

    def acquire(self) -> "DocumentLease":
        token = uuid.uuid4().hex
        with engine.begin() as conn:
            row = conn.execute(
                text("""
                    UPDATE documents
                    SET status = 'processing',
                        error_message = NULL,
                        lease_token = :token,
                        lease_expires_at = NOW() + make_interval(secs => :ttl),
                        updated_at = NOW()
                    WHERE id = :id
                      AND owner_id = :owner
                      AND (status <> 'processing' OR lease_expires_at IS NULL OR lease_expires_at < NOW())
                    RETURNING id
                """),
                {"token": token, "ttl": self.ttl_seconds, "id": self.document_id, "owner": self.owner_id},
            ).first()
        if not row:
            # Distinguish "missing" from "busy"
            get_document(self.document_id, self.owner_id)
            raise DocumentBusyError(f"Document {self.document_id} is already being processed")
        self.token = token
        logger.info("Acquired processing lease", document_id=self.document_id)
        return self

    def release(self, status: str, error_message: str = None) -> bool:
        """Set the final status and drop the lease; False if the lease was lost."""
        with engine.begin() as conn:
            row = conn.execute(
                text("""
                    UPDATE documents
                    SET status = :status,
                        error_message = :error,
                        lease_token = NULL,
                        lease_expires_at = NULL,
                        updated_at = NOW()
                    WHERE id = :id AND lease_token = :token
                    RETURNING id
                """),
                {"status": status, "error": error_message, "id": self.document_id, "token": self.token},
            ).first()
        self.token = None
        if not row:
            logger.warning("Processing lease was lost before release", document_id=self.document_id)
            return False
        logger.info("Released processing lease", document_id=self.document_id, status=status)
        return True


@contextmanager
def processing_lease(document_id: str, owner_id: str):
    """
    Hold the processing lease for the duration of a block.

    The document ends `ready` if the block completes and `error` if it raises.
    """
    lease = DocumentLease(document_id, owner_id).acquire()
    try:
        yield lease
    except BaseException as e:
        lease.release("error", error_message=str(e) or type(e).__name__)
        raise
    else:
        lease.release("ready")
