import json
from unittest.mock import AsyncMock, patch

import pytest

from inkwell.errors import ConversationNotFoundError, EmbeddingServiceError, GenerationServiceError
from inkwell.schemas import Source
from inkwell.services import rag_service
from inkwell.services.rag_service import ChatStream, DuplicatingSink, StreamState
from inkwell.services.retrieval_service import RetrievalMode, RetrievalResult

PREFIX = "inkwell.services.rag_service"


class FakeConversations:
    """In-memory stand-in for the conversation service that logs every write."""

    def __init__(self, log, existing=None):
        self.log = log
        self.existing = existing or {}
        self.messages = []

    def make_title(self, message, max_chars=None):
        return message[:50]

    def create_conversation(self, owner_id, title="New Chat"):
        self.log.append("create_conversation")
        return {"id": "chat-new", "title": title}

    def get_conversation(self, conversation_id, owner_id):
        if conversation_id not in self.existing:
            raise ConversationNotFoundError(conversation_id)
        return {"id": conversation_id}

    def get_recent_turns(self, conversation_id, limit=None):
        return self.existing[conversation_id]

    def append_message(self, conversation_id, role, content, sources=None, touch=False):
        self.log.append(f"append:{role}")
        if touch:
            self.log.append("touch")
        self.messages.append({"role": role, "content": content, "sources": sources})


class FailingAnswerWrite(FakeConversations):
    """Rejects the assistant write as a whole, like a rolled-back transaction."""

    def append_message(self, conversation_id, role, content, sources=None, touch=False):
        if role == "assistant":
            raise RuntimeError("could not update conversation")
        super().append_message(conversation_id, role, content, sources, touch)


def _grounded():
    return RetrievalResult(
        mode=RetrievalMode.GROUNDED,
        sources=[
            Source(number=1, document_id="d1", filename="policy.pdf", content="Refunds within 30 days.", similarity=0.82),
            Source(number=2, document_id="d2", filename="faq.md", content="Store credit after.", similarity=0.61),
        ],
    )


def _generator(*fragments, fail_with=None):
    async def generate_stream(prompt, model=None):
        for fragment in fragments:
            yield fragment
        if fail_with is not None:
            raise fail_with
    return generate_stream


async def _collect(events, log):
    lines = []
    async for line in events:
        event = json.loads(line)
        log.append(f"yield:{event['type']}")
        lines.append(event)
    return lines


class TestChatStream:
    """Event order and persistence of streamed answers."""

    @pytest.mark.asyncio
    async def test_grounded_stream_event_and_write_order(self):
        log = []
        conversations = FakeConversations(log)

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate_stream", _generator("Refunds are ", "accepted [1].")):

            stream = ChatStream("user-1", "  Can I get a refund?  ")
            events = await _collect(stream.events(), log)

        assert log == [
            "create_conversation",
            "append:user",
            "yield:metadata",
            "yield:chunk",
            "yield:chunk",
            "append:assistant",
            "touch",
            "yield:done",
        ]
        metadata = events[0]
        assert metadata["chatId"] == "chat-new"
        assert metadata["hasDocuments"] is True
        assert [s["number"] for s in metadata["sources"]] == [1, 2]
        assert [e["text"] for e in events[1:3]] == ["Refunds are ", "accepted [1]."]

        user, assistant = conversations.messages
        assert user["content"] == "Can I get a refund?"
        assert assistant["content"] == "Refunds are accepted [1]."
        assert assistant["sources"] == metadata["sources"]
        assert stream.state == StreamState.COMPLETED

    @pytest.mark.asyncio
    async def test_generation_failure_stores_no_assistant_message(self):
        log = []
        conversations = FakeConversations(log)

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate_stream",
                   _generator("Partial ", fail_with=GenerationServiceError("model crashed"))):

            stream = ChatStream("user-1", "Question?")
            events = await _collect(stream.events(), log)

        assert [e["type"] for e in events] == ["metadata", "chunk", "error"]
        assert events[-1]["message"] == "model crashed"
        assert "append:assistant" not in log
        assert "touch" not in log
        assert stream.state == StreamState.FAILED

    @pytest.mark.asyncio
    async def test_retrieval_failure_yields_only_error(self):
        log = []
        conversations = FakeConversations(log)

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock,
                   side_effect=EmbeddingServiceError("embedding service down")):

            stream = ChatStream("user-1", "Question?")
            events = await _collect(stream.events(), log)

        assert [e["type"] for e in events] == ["error"]
        assert log == ["create_conversation", "append:user", "yield:error"]
        assert stream.state == StreamState.FAILED

    @pytest.mark.asyncio
    async def test_failed_answer_write_ends_with_error_and_stores_no_answer(self):
        log = []
        conversations = FailingAnswerWrite(log)

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate_stream", _generator("ok")):

            stream = ChatStream("user-1", "Question?")
            events = await _collect(stream.events(), log)

        assert [e["type"] for e in events] == ["metadata", "chunk", "error"]
        assert [m["role"] for m in conversations.messages] == ["user"]
        assert stream.state == StreamState.FAILED

    @pytest.mark.asyncio
    async def test_abandoned_stream_stores_nothing_more(self):
        log = []
        conversations = FakeConversations(log)

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate_stream", _generator("one ", "two ", "three")):

            stream = ChatStream("user-1", "Question?")
            events = stream.events()
            await events.__anext__()  # metadata
            await events.__anext__()  # first chunk
            await events.aclose()

        assert stream.state == StreamState.FAILED
        assert log == ["create_conversation", "append:user"]

    @pytest.mark.asyncio
    async def test_no_documents_stream(self):
        log = []
        conversations = FakeConversations(log)
        prompts = []

        async def generate_stream(prompt, model=None):
            prompts.append(prompt)
            yield "Please upload documents first."

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock,
                   return_value=RetrievalResult(mode=RetrievalMode.NO_DOCUMENTS)), \
             patch(f"{PREFIX}.generate_stream", generate_stream):

            events = await _collect(ChatStream("user-1", "Hello?").events(), log)

        assert events[0] == {"type": "metadata", "chatId": "chat-new", "sources": [], "hasDocuments": False}
        assert events[-1] == {"type": "done"}
        assert "upload documents first" in prompts[0]
        assert conversations.messages[-1]["sources"] is None

    @pytest.mark.asyncio
    async def test_existing_chat_uses_persisted_history(self):
        log = []
        history = [{"role": "user", "content": "What is covered?"}, {"role": "assistant", "content": "Refunds [1]."}]
        conversations = FakeConversations(log, existing={"chat-1": history})
        prompts = []

        async def generate_stream(prompt, model=None):
            prompts.append(prompt)
            yield "Yes."

        with patch(f"{PREFIX}.conversation_service", conversations), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate_stream", generate_stream):

            events = await _collect(ChatStream("user-1", "And exchanges?", chat_id="chat-1").events(), log)

        assert events[0]["chatId"] == "chat-1"
        assert "create_conversation" not in log
        assert "Previous conversation:\nUser: What is covered?\nAssistant: Refunds [1]." in prompts[0]

    @pytest.mark.asyncio
    async def test_stream_chat_returns_event_generator(self):
        log = []
        with patch(f"{PREFIX}.conversation_service", FakeConversations(log)), \
             patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate_stream", _generator("ok")):

            lines = [line async for line in rag_service.stream_chat("user-1", "Question?")]

        assert all(line.endswith("\n") for line in lines)
        assert json.loads(lines[-1]) == {"type": "done"}

    def test_invalid_transition_is_rejected(self):
        stream = ChatStream("user-1", "Question?")
        with pytest.raises(RuntimeError):
            stream._advance(StreamState.STREAMING_TOKENS)
        assert stream.state == StreamState.CREATED


class TestDuplicatingSink:

    def test_push_emits_chunk_and_accumulates(self):
        sink = DuplicatingSink()
        assert json.loads(sink.push("Hello ")) == {"type": "chunk", "text": "Hello "}
        sink.push("world")
        assert sink.text == "Hello world"

    def test_discard(self):
        sink = DuplicatingSink()
        sink.push("partial")
        sink.discard()
        assert sink.text == ""


class TestAnswer:

    @pytest.mark.asyncio
    async def test_returns_complete_answer(self):
        with patch(f"{PREFIX}.retrieval_service.retrieve", new_callable=AsyncMock, return_value=_grounded()), \
             patch(f"{PREFIX}.generate", new_callable=AsyncMock, return_value="Refunds within 30 days [1].") as mock_generate, \
             patch(f"{PREFIX}.conversation_service") as mock_conversations:

            result = await rag_service.answer("user-1", "Refund window?")

        assert result["response"] == "Refunds within 30 days [1]."
        assert result["hasDocuments"] is True
        assert [s["number"] for s in result["sources"]] == [1, 2]
        prompt = mock_generate.call_args.args[0]
        assert "USER QUESTION: Refund window?" in prompt
        mock_conversations.append_message.assert_not_called()
