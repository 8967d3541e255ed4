"""
RAG (Retrieval-Augmented Generation) service.
Handles retrieval, prompt building, and streaming responses with persistence.
"""
import asyncio
import json
import time
from enum import Enum
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

from ..logging_config import logger
from ..schemas import ChatTurn
from . import conversation_service, retrieval_service
from .model_service import generate, generate_stream
from .prompt_service import build_prompt


class StreamState(str, Enum):
    CREATED = "created"
    AWAITING_METADATA_FLUSH = "awaiting-metadata-flush"
    STREAMING_TOKENS = "streaming-tokens"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    StreamState.CREATED: {StreamState.AWAITING_METADATA_FLUSH, StreamState.FAILED},
    StreamState.AWAITING_METADATA_FLUSH: {StreamState.STREAMING_TOKENS, StreamState.FAILED},
    StreamState.STREAMING_TOKENS: {StreamState.COMPLETED, StreamState.FAILED},
    StreamState.COMPLETED: set(),
    StreamState.FAILED: set(),
}


def _line(event: Dict[str, Any]) -> str:
    return json.dumps(event) + "\n"


def metadata_event(chat_id: str, sources: List[Dict], has_documents: bool) -> str:
    return _line({"type": "metadata", "chatId": chat_id, "sources": sources, "hasDocuments": has_documents})


def chunk_event(text: str) -> str:
    return _line({"type": "chunk", "text": text})


def done_event() -> str:
    return _line({"type": "done"})


def error_event(message: str) -> str:
    return _line({"type": "error", "message": message})


class DuplicatingSink:
    """
    Every fragment goes two ways: out to the client as a chunk event, and
    into an accumulator that is persisted once the stream completes.
    """

    def __init__(self):
        self._fragments: List[str] = []

    def push(self, fragment: str) -> str:
        self._fragments.append(fragment)
        return chunk_event(fragment)

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    def discard(self) -> None:
        self._fragments.clear()


class ChatStream:
    """
    One streamed answer, from the user's message to the terminal event.

    Side effects happen in a fixed order: user message write, metadata event,
    chunk events, assistant message write (one transaction with the
    conversation timestamp update), done event. Any failure ends the stream
    with an error event instead and nothing of the partial answer is stored.
    """

    def __init__(
        self,
        owner_id: str,
        message: str,
        chat_id: Optional[str] = None,
        history: Optional[Sequence[ChatTurn]] = None,
        model: Optional[str] = None,
    ):
        self.owner_id = owner_id
        self.message = message.strip()
        self.chat_id = chat_id
        self.history = history
        self.model = model
        self.state = StreamState.CREATED

    def _advance(self, state: StreamState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid stream transition {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self) -> None:
        if self.state not in (StreamState.COMPLETED, StreamState.FAILED):
            self.state = StreamState.FAILED

    def _resolve_conversation(self) -> str:
        if self.chat_id:
            conversation_service.get_conversation(self.chat_id, self.owner_id)
            if self.history is None:
                self.history = conversation_service.get_recent_turns(self.chat_id)
            return self.chat_id

        title = conversation_service.make_title(self.message)
        return conversation_service.create_conversation(self.owner_id, title)["id"]

    async def events(self) -> AsyncGenerator[str, None]:
        """
        Yield NDJSON event lines for this answer.

        Yields:
            metadata, then zero or more chunk events, then done or error
        """
        start_time = time.time()
        sink = DuplicatingSink()

        try:
            self.chat_id = self._resolve_conversation()
            conversation_service.append_message(self.chat_id, "user", self.message)

            retrieval = await retrieval_service.retrieve(self.owner_id, self.message)
            sources = [s.model_dump() for s in retrieval.sources]
            prompt = build_prompt(self.message, retrieval.sources, retrieval.has_documents, self.history)

            self._advance(StreamState.AWAITING_METADATA_FLUSH)
            yield metadata_event(self.chat_id, sources, retrieval.has_documents)

            self._advance(StreamState.STREAMING_TOKENS)
            async for fragment in generate_stream(prompt, self.model):
                yield sink.push(fragment)

            # Message and activity timestamp commit together or not at all
            conversation_service.append_message(
                self.chat_id, "assistant", sink.text, sources=sources or None, touch=True
            )
            self._advance(StreamState.COMPLETED)

        except (GeneratorExit, asyncio.CancelledError):
            # Client went away: treat as failure, store nothing
            self._fail()
            sink.discard()
            logger.warning("Stream abandoned by client", chat_id=self.chat_id)
            raise

        except Exception as e:
            self._fail()
            sink.discard()
            logger.error("Streaming answer failed", chat_id=self.chat_id, exc_info=e)
            yield error_event(str(e) or "Failed to generate a response")
            return

        elapsed_ms = round((time.time() - start_time) * 1000, 2)
        logger.info("Query completed", chat_id=self.chat_id, sources=len(sources), time_ms=elapsed_ms)
        yield done_event()


def stream_chat(
    owner_id: str,
    message: str,
    chat_id: Optional[str] = None,
    history: Optional[Sequence[ChatTurn]] = None,
    model: Optional[str] = None,
) -> AsyncGenerator[str, None]:
    """Event stream for one chat message (see ChatStream)."""
    return ChatStream(owner_id, message, chat_id, history, model).events()


async def answer(
    owner_id: str,
    message: str,
    history: Optional[Sequence[ChatTurn]] = None,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Non-streaming variant: one complete answer, nothing persisted.

    Returns:
        {"response": str, "sources": [...], "hasDocuments": bool}
    """
    question = message.strip()
    retrieval = await retrieval_service.retrieve(owner_id, question)
    prompt = build_prompt(question, retrieval.sources, retrieval.has_documents, history)
    response = await generate(prompt, model)
    logger.info("Answered query", mode=retrieval.mode.value, sources=len(retrieval.sources))
    return {
        "response": response,
        "sources": [s.model_dump() for s in retrieval.sources],
        "hasDocuments": retrieval.has_documents,
    }
