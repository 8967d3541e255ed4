"""
Retrieval orchestration: query → numbered sources.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from .. import chunk_store, config, embedding
from ..logging_config import logger
from ..schemas import Source
from . import document_service


class RetrievalMode(str, Enum):
    NO_DOCUMENTS = "no-documents"
    NO_RELEVANT_MATCH = "no-relevant-match"
    GROUNDED = "grounded"


@dataclass
class RetrievalResult:
    mode: RetrievalMode
    sources: List[Source] = field(default_factory=list)

    @property
    def has_documents(self) -> bool:
        return self.mode != RetrievalMode.NO_DOCUMENTS


def number_sources(matches: List[dict], filenames: dict) -> List[Source]:
    """
    Turn search matches into citation-numbered sources.

    Numbers run 1..N in descending similarity. Every chunk gets its own
    number, even when several come from the same document.
    """
    ordered = sorted(matches, key=lambda m: m["similarity"], reverse=True)
    return [
        Source(
            number=number,
            document_id=m["document_id"],
            filename=filenames.get(m["document_id"], document_service.UNKNOWN_DOCUMENT),
            content=m["content"],
            similarity=float(m["similarity"]),
        )
        for number, m in enumerate(ordered, start=1)
    ]


async def retrieve(
    owner_id: str,
    query: str,
    threshold: float = None,
    top_k: int = None,
) -> RetrievalResult:
    """
    Find the sources an answer to `query` may cite.

    Args:
        owner_id: Whose documents to search
        query: The user's question
        threshold: Minimum similarity (default MATCH_THRESHOLD)
        top_k: Maximum number of sources (default MATCH_COUNT)

    Returns:
        RetrievalResult in one of three modes:
        no-documents (nothing searched), no-relevant-match, grounded
    """
    threshold = config.MATCH_THRESHOLD if threshold is None else threshold
    top_k = config.MATCH_COUNT if top_k is None else top_k

    if document_service.get_ready_document_count(owner_id) == 0:
        logger.info("No ready documents, skipping retrieval", owner_id=owner_id)
        return RetrievalResult(mode=RetrievalMode.NO_DOCUMENTS)

    query_vector = await embedding.embed(query)
    matches = chunk_store.search(query_vector, owner_id, threshold, top_k)
    logger.info("Retrieved chunks", count=len(matches), threshold=threshold, top_k=top_k)

    if not matches:
        return RetrievalResult(mode=RetrievalMode.NO_RELEVANT_MATCH)

    filenames = document_service.get_filenames(m["document_id"] for m in matches)
    return RetrievalResult(mode=RetrievalMode.GROUNDED, sources=number_sources(matches, filenames))
