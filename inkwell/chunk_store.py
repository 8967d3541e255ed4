"""
Vector persistence and similarity search over document chunks (pgvector).
"""
import uuid
from time import perf_counter
from typing import Dict, List

from sqlalchemy import text as sa_text
from sqlalchemy.exc import SQLAlchemyError

from .db import SessionLocal, engine
from .errors import ChunkStoreError
from .logging_config import logger
from .models import Chunk


def insert(document_id: str, content: str, vector: List[float], ordinal: int) -> str:
    """
    Store one embedded chunk.

    Returns:
        The new chunk id
    """
    chunk_id = str(uuid.uuid4())
    try:
        with SessionLocal() as db, db.begin():
            db.add(
                Chunk(
                    id=chunk_id,
                    document_id=document_id,
                    chunk_index=ordinal,
                    content=content,
                    embedding=vector,
                )
            )
    except SQLAlchemyError as e:
        logger.error("Chunk insert failed", document_id=document_id, ordinal=ordinal, error=str(e))
        raise ChunkStoreError(f"Failed to store chunk {ordinal} of {document_id}") from e
    return chunk_id


def search(query_vector: List[float], owner_id: str, threshold: float, top_k: int) -> List[Dict]:
    """
    Search for similar chunks among the owner's ready documents.

    Parameters:
    query_vector: Embedding of the query.
    owner_id: Only chunks of this owner's documents are considered.
    threshold: Minimum cosine similarity (exclusive).
    top_k: Maximum number of matches.

    Returns:
    List[Dict]: chunk_id, document_id, content, similarity; most similar first.
    """
    t = perf_counter()
    try:
        with engine.begin() as conn:
            rows = conn.execute(
                sa_text("""
                    SELECT
                        c.id AS chunk_id,
                        c.document_id,
                        c.content,
                        1 - (c.embedding <=> (:qv)::vector) AS similarity
                    FROM chunks c
                    JOIN documents d ON d.id = c.document_id
                    WHERE d.owner_id = :owner
                      AND d.status = 'ready'
                      AND 1 - (c.embedding <=> (:qv)::vector) > :threshold
                    ORDER BY c.embedding <=> (:qv)::vector, c.id
                    LIMIT :k
                """),
                {"qv": query_vector, "owner": owner_id, "threshold": threshold, "k": top_k},
            ).mappings().all()
    except SQLAlchemyError as e:
        logger.error("Similarity search failed", owner_id=owner_id, error=str(e))
        raise ChunkStoreError("Similarity search failed") from e

    logger.info("Searched similar chunks", matches=len(rows), time_ms=round((perf_counter() - t) * 1000, 2))
    return [
        {
            "chunk_id": r["chunk_id"],
            "document_id": r["document_id"],
            "content": r["content"],
            "similarity": float(r["similarity"]),
        }
        for r in rows
    ]


def delete_by_document(document_id: str) -> int:
    """Remove every chunk of a document; returns how many were deleted."""
    try:
        with engine.begin() as conn:
            result = conn.execute(
                sa_text("DELETE FROM chunks WHERE document_id = :doc"),
                {"doc": document_id},
            )
    except SQLAlchemyError as e:
        raise ChunkStoreError(f"Failed to delete chunks of {document_id}") from e
    return result.rowcount
