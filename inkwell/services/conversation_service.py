"""
Conversation management service.
Handles CRUD operations for conversations and messages.
"""
import json
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from .. import config
from ..db import engine
from ..errors import ConversationNotFoundError
from ..logging_config import logger

DEFAULT_TITLE = "New Chat"


def make_title(message: str, max_chars: int = None) -> str:
    """Title for a conversation started by `message`."""
    max_chars = config.TITLE_MAX_CHARS if max_chars is None else max_chars
    title = " ".join(message.split())
    if len(title) > max_chars:
        title = title[:max_chars].rstrip() + "..."
    return title or DEFAULT_TITLE


def create_conversation(owner_id: str, title: str = DEFAULT_TITLE) -> Dict[str, Any]:
    """
    Create a new conversation.

    Returns:
        The new conversation (id, title, created_at, updated_at)
    """
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                INSERT INTO conversations (id, owner_id, title)
                VALUES (:id, :owner, :title)
                RETURNING id, title, created_at, updated_at
            """),
            {"id": str(uuid.uuid4()), "owner": owner_id, "title": title},
        ).mappings().one()
    logger.info("Created new conversation", conversation_id=row["id"])
    return dict(row)


def get_conversation(conversation_id: str, owner_id: str) -> Dict[str, Any]:
    """
    Fetch a conversation header.

    Raises:
        ConversationNotFoundError: If the owner has no such conversation
    """
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                SELECT id, title, created_at, updated_at
                FROM conversations
                WHERE id = :cid AND owner_id = :owner
            """),
            {"cid": conversation_id, "owner": owner_id},
        ).mappings().first()
    if not row:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
    return dict(row)


def list_conversations(owner_id: str) -> List[Dict[str, Any]]:
    """Owner's conversations, most recently active first."""
    with engine.begin() as conn:
        rows = conn.execute(
            text("""
                SELECT id, title, created_at, updated_at
                FROM conversations
                WHERE owner_id = :owner
                ORDER BY updated_at DESC
            """),
            {"owner": owner_id},
        ).mappings().all()
    return [dict(r) for r in rows]


def append_message(
    conversation_id: str,
    role: str,
    content: str,
    sources: Optional[List[Dict]] = None,
    touch: bool = False,
) -> Any:
    """
    Store a message in the conversation.

    Args:
        conversation_id: The conversation ID
        role: "user" or "assistant"
        content: The message content
        sources: Optional numbered sources the message cites
        touch: Also bump the conversation's updated_at, in the same transaction

    Returns:
        The created_at timestamp of the message
    """
    sources_json = json.dumps(sources) if sources is not None else None

    with engine.begin() as conn:
        result = conn.execute(
            text("""
                INSERT INTO messages (id, conversation_id, role, content, sources)
                VALUES (:id, :cid, :role, :content, CAST(:sources AS JSONB))
                RETURNING created_at
            """),
            {
                "id": str(uuid.uuid4()),
                "cid": conversation_id,
                "role": role,
                "content": content,
                "sources": sources_json,
            },
        )
        timestamp = result.scalar_one()
        if touch:
            conn.execute(
                text("UPDATE conversations SET updated_at = NOW() WHERE id = :cid"),
                {"cid": conversation_id},
            )
    logger.debug("Stored message", conversation_id=conversation_id, role=role)
    return timestamp


def rename_conversation(conversation_id: str, owner_id: str, title: str) -> Dict[str, Any]:
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                UPDATE conversations SET title = :title, updated_at = NOW()
                WHERE id = :cid AND owner_id = :owner
                RETURNING id, title, created_at, updated_at
            """),
            {"title": title, "cid": conversation_id, "owner": owner_id},
        ).mappings().first()
    if not row:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
    return dict(row)


def get_messages(conversation_id: str) -> List[Dict[str, Any]]:
    """All messages of a conversation in chronological order."""
    with engine.begin() as conn:
        messages = conn.execute(
            text("""
                SELECT id, role, content, sources, created_at
                FROM messages
                WHERE conversation_id = :cid
                ORDER BY created_at ASC, id ASC
            """),
            {"cid": conversation_id},
        ).mappings().all()

    serializable_messages = []
    for msg in messages:
        msg_dict = dict(msg)

        if msg_dict.get("created_at"):
            msg_dict["created_at"] = msg_dict["created_at"].isoformat()

        # JSONB comes back decoded; older rows may hold a JSON string
        if isinstance(msg_dict.get("sources"), str):
            msg_dict["sources"] = json.loads(msg_dict["sources"])

        serializable_messages.append(msg_dict)
    return serializable_messages


def get_recent_turns(conversation_id: str, limit: int = None) -> List[Dict[str, str]]:
    """Last `limit` messages as {role, content}, oldest first."""
    limit = config.HISTORY_TURNS if limit is None else limit
    if limit <= 0:
        return []
    messages = get_messages(conversation_id)
    return [{"role": m["role"], "content": m["content"]} for m in messages[-limit:]]


def get_conversation_with_messages(conversation_id: str, owner_id: str) -> Dict[str, Any]:
    """
    Retrieve a conversation and all its messages.

    Raises:
        ConversationNotFoundError: If conversation not found
    """
    chat = get_conversation(conversation_id, owner_id)
    return {"chat": chat, "messages": get_messages(conversation_id)}


def delete_conversation(conversation_id: str, owner_id: str) -> None:
    """
    Delete a conversation and all its messages.

    Raises:
        ConversationNotFoundError: If the owner has no such conversation
    """
    with engine.begin() as conn:
        row = conn.execute(
            text("DELETE FROM conversations WHERE id = :cid AND owner_id = :owner RETURNING id"),
            {"cid": conversation_id, "owner": owner_id},
        ).first()
    if not row:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
    logger.info("Deleted conversation", conversation_id=conversation_id)
