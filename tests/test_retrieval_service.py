from unittest.mock import AsyncMock, patch

import pytest

from inkwell.services import retrieval_service
from inkwell.services.document_service import UNKNOWN_DOCUMENT
from inkwell.services.retrieval_service import RetrievalMode, number_sources

PREFIX = "inkwell.services.retrieval_service"
QUERY_VECTOR = [0.1] * 384


def _match(document_id, similarity, content="text"):
    return {"chunk_id": f"c-{document_id}-{similarity}", "document_id": document_id, "content": content, "similarity": similarity}


class TestRetrieve:
    """Retrieval modes and source numbering."""

    @pytest.mark.asyncio
    async def test_no_documents_skips_embedding(self):
        with patch(f"{PREFIX}.document_service.get_ready_document_count", return_value=0), \
             patch(f"{PREFIX}.embedding.embed", new_callable=AsyncMock) as mock_embed, \
             patch(f"{PREFIX}.chunk_store.search") as mock_search:

            result = await retrieval_service.retrieve("user-1", "What is the refund policy?")

        assert result.mode == RetrievalMode.NO_DOCUMENTS
        assert result.sources == []
        assert result.has_documents is False
        mock_embed.assert_not_called()
        mock_search.assert_not_called()

    @pytest.mark.asyncio
    async def test_grounded_sources_are_numbered_from_one(self):
        matches = [_match("doc-a", 0.82, "Refunds within 30 days."), _match("doc-b", 0.61, "Store credit only.")]

        with patch(f"{PREFIX}.document_service.get_ready_document_count", return_value=2), \
             patch(f"{PREFIX}.embedding.embed", new_callable=AsyncMock, return_value=QUERY_VECTOR), \
             patch(f"{PREFIX}.chunk_store.search", return_value=matches) as mock_search, \
             patch(f"{PREFIX}.document_service.get_filenames",
                   return_value={"doc-a": "policy.pdf", "doc-b": "faq.md"}):

            result = await retrieval_service.retrieve("user-1", "refunds?")

        mock_search.assert_called_once_with(QUERY_VECTOR, "user-1", 0.5, 5)
        assert result.mode == RetrievalMode.GROUNDED
        assert result.has_documents is True
        assert [s.number for s in result.sources] == [1, 2]
        assert [s.filename for s in result.sources] == ["policy.pdf", "faq.md"]
        assert result.sources[0].content == "Refunds within 30 days."
        assert result.sources[0].similarity == pytest.approx(0.82)

    @pytest.mark.asyncio
    async def test_explicit_threshold_and_top_k(self):
        with patch(f"{PREFIX}.document_service.get_ready_document_count", return_value=1), \
             patch(f"{PREFIX}.embedding.embed", new_callable=AsyncMock, return_value=QUERY_VECTOR), \
             patch(f"{PREFIX}.chunk_store.search", return_value=[]) as mock_search:

            await retrieval_service.retrieve("user-1", "q", threshold=0.7, top_k=2)

        mock_search.assert_called_once_with(QUERY_VECTOR, "user-1", 0.7, 2)

    @pytest.mark.asyncio
    async def test_no_matches_means_no_relevant_match(self):
        with patch(f"{PREFIX}.document_service.get_ready_document_count", return_value=3), \
             patch(f"{PREFIX}.embedding.embed", new_callable=AsyncMock, return_value=QUERY_VECTOR), \
             patch(f"{PREFIX}.chunk_store.search", return_value=[]), \
             patch(f"{PREFIX}.document_service.get_filenames") as mock_filenames:

            result = await retrieval_service.retrieve("user-1", "unrelated question")

        assert result.mode == RetrievalMode.NO_RELEVANT_MATCH
        assert result.sources == []
        assert result.has_documents is True
        mock_filenames.assert_not_called()


class TestNumberSources:

    def test_orders_by_descending_similarity(self):
        matches = [_match("a", 0.55), _match("b", 0.91), _match("c", 0.7)]
        sources = number_sources(matches, {"a": "a.txt", "b": "b.txt", "c": "c.txt"})
        assert [(s.number, s.document_id) for s in sources] == [(1, "b"), (2, "c"), (3, "a")]

    def test_chunks_of_same_document_get_distinct_numbers(self):
        matches = [_match("doc", 0.9, "first"), _match("doc", 0.8, "second")]
        sources = number_sources(matches, {"doc": "guide.md"})
        assert [s.number for s in sources] == [1, 2]
        assert [s.content for s in sources] == ["first", "second"]
        assert {s.filename for s in sources} == {"guide.md"}

    def test_missing_filename_uses_sentinel(self):
        sources = number_sources([_match("gone", 0.6)], {})
        assert sources[0].filename == UNKNOWN_DOCUMENT == "Unknown document"

    def test_empty(self):
        assert number_sources([], {}) == []
