"""
Chat-related API routes.
Handles conversation management and RAG question answering.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ..errors import ConversationNotFoundError, InkwellError
from ..logging_config import logger
from ..schemas import AnswerResponse, AskBody, CreateChatBody, RenameChatBody
from ..services import conversation_service
from ..services.conversation_service import DEFAULT_TITLE
from ..services.rag_service import answer, stream_chat
from ..utils.citations import cited_sources
from .deps import get_owner_id

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=AnswerResponse)
async def ask(payload: AskBody, owner_id: str = Depends(get_owner_id)):
    """Answer a question in one response (nothing is persisted)."""
    try:
        return await answer(owner_id, payload.message, payload.conversation_history, payload.model)
    except InkwellError as e:
        logger.error("Query failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/chat/stream")
async def ask_stream(payload: AskBody, owner_id: str = Depends(get_owner_id)):
    """
    Streaming RAG endpoint, one JSON event per line.

    Workflow:
    1. Create/retrieve conversation
    2. Store user message
    3. Retrieve relevant chunks and emit metadata
    4. Stream LLM fragments
    5. Store assistant message and emit done (or error)
    """
    if payload.chat_id:
        # Unknown conversations are rejected before anything is written
        try:
            conversation_service.get_conversation(payload.chat_id, owner_id)
        except ConversationNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    return StreamingResponse(
        stream_chat(
            owner_id,
            payload.message,
            chat_id=payload.chat_id,
            history=payload.conversation_history,
            model=payload.model,
        ),
        media_type="application/x-ndjson",
    )


@router.get("/chats")
async def list_chats(owner_id: str = Depends(get_owner_id)):
    return {"chats": conversation_service.list_conversations(owner_id)}


@router.post("/chats")
async def create_chat(body: Optional[CreateChatBody] = None, owner_id: str = Depends(get_owner_id)):
    title = (body.title if body else None) or DEFAULT_TITLE
    return {"chat": conversation_service.create_conversation(owner_id, title)}


@router.get("/chats/{chat_id}")
async def get_chat(chat_id: str, owner_id: str = Depends(get_owner_id)):
    """
    Retrieve a conversation with its messages in chronological order.
    Assistant messages list the source numbers their text actually cites.
    """
    try:
        data = conversation_service.get_conversation_with_messages(chat_id, owner_id)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    for message in data["messages"]:
        if message["role"] == "assistant" and message.get("sources"):
            message["cited"] = [s["number"] for s in cited_sources(message["content"], message["sources"])]
    return data


@router.patch("/chats/{chat_id}")
async def rename_chat(chat_id: str, body: RenameChatBody, owner_id: str = Depends(get_owner_id)):
    try:
        return {"chat": conversation_service.rename_conversation(chat_id, owner_id, body.title)}
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/chats/{chat_id}")
async def delete_chat(chat_id: str, owner_id: str = Depends(get_owner_id)):
    """Delete a conversation and all its messages."""
    try:
        conversation_service.delete_conversation(chat_id, owner_id)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}
