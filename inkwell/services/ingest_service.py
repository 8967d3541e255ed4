"""
Document processing pipeline.
Stored file → text → chunks → embeddings → chunk store, under a processing lease.
"""
import asyncio
import time
from typing import Any, Dict, List

from .. import chunk_store, config, embedding, storage
from ..errors import EmptyDocumentError
from ..logging_config import logger
from ..processing import TextChunker
from ..text_extraction import read_any
from . import document_service


async def embed_chunks(texts: List[str]) -> List[List[float]]:
    """
    Embed chunk texts, several batches at a time.

    Chunks are independent, so batches run concurrently (bounded by
    EMBED_CONCURRENCY); the result keeps the input order.
    """
    size = max(1, config.EMBED_BATCH_SIZE)
    batches = [texts[i:i + size] for i in range(0, len(texts), size)]
    semaphore = asyncio.Semaphore(max(1, config.EMBED_CONCURRENCY))

    async def run(batch: List[str]) -> List[List[float]]:
        async with semaphore:
            return await embedding.embed_batch(batch)

    results = await asyncio.gather(*(run(batch) for batch in batches))
    return [vector for batch in results for vector in batch]


async def process_document(document_id: str, owner_id: str) -> int:
    """
    Rebuild the chunks of one document.

    Args:
        document_id: Document to process
        owner_id: Owner of the document

    Returns:
        Number of chunks stored

    Raises:
        DocumentNotFoundError: Unknown document (nothing is changed)
        DocumentBusyError: Another worker is processing it (nothing is changed)
        InkwellError / other: Processing failed; the document is left in `error`
    """
    start_time = time.time()
    document = document_service.get_document(document_id, owner_id)

    with document_service.processing_lease(document_id, owner_id):
        # Parsing blocks, so it runs in a worker thread
        doc_text, kind = await asyncio.to_thread(
            read_any,
            storage.resolve(document["storage_path"]),
            document["mime_type"] or "",
            document["filename"] or "",
        )

        chunks = TextChunker().chunk_text(doc_text)
        if not chunks:
            raise EmptyDocumentError(f"No extractable text in {document['filename']}")
        logger.info("Created chunks", document_id=document_id, kind=kind, chunk_count=len(chunks))

        # Stale chunks from an earlier attempt would break ordinal contiguity
        removed = chunk_store.delete_by_document(document_id)
        if removed:
            logger.info("Removed stale chunks", document_id=document_id, count=removed)

        vectors = await embed_chunks([c.content for c in chunks])

        for chunk, vector in zip(chunks, vectors):
            chunk_store.insert(document_id, chunk.content, vector, chunk.index)

    elapsed_ms = round((time.time() - start_time) * 1000, 2)
    logger.info("Document processed", document_id=document_id, chunks=len(chunks), time_ms=elapsed_ms)
    return len(chunks)


async def process_many(document_ids: List[str], owner_id: str) -> List[Dict[str, Any]]:
    """
    Process several documents concurrently.

    Each document keeps its own status lifecycle; one failure does not
    affect the others.
    """
    results = await asyncio.gather(
        *(process_document(doc_id, owner_id) for doc_id in document_ids),
        return_exceptions=True,
    )

    outcome = []
    for doc_id, result in zip(document_ids, results):
        if isinstance(result, BaseException):
            logger.error("Document processing failed", document_id=doc_id, error=str(result))
            outcome.append({"document_id": doc_id, "status": "error", "chunks": 0, "error": str(result)})
        else:
            outcome.append({"document_id": doc_id, "status": "ready", "chunks": result})
    return outcome
