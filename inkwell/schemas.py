"""
Pydantic schemas for request/response validation.
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

Role = Literal["user", "assistant"]


class ChatTurn(BaseModel):
    """Represents a single turn in a conversation."""
    role: Role
    content: str


class Source(BaseModel):
    """A numbered, query-scoped reference to a retrieved chunk."""
    number: int = Field(..., ge=1)
    document_id: str
    filename: str
    content: str
    similarity: float


class AskBody(BaseModel):
    """Request body for asking questions."""
    message: str = Field(..., min_length=1, description="The question to ask")
    chat_id: Optional[str] = Field(None, description="Existing conversation ID or None for a new conversation")
    conversation_history: Optional[List[ChatTurn]] = Field(None, description="Previous conversation turns")
    model: Optional[str] = Field(None, description="Model identifier: 'openai:gpt-4o-mini' or 'ollama:qwen2.5:7b'")

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, value):
        return value.strip() if isinstance(value, str) else value


class AnswerResponse(BaseModel):
    """Non-streaming answer."""
    response: str
    sources: List[Source]
    hasDocuments: bool


class ProcessDocumentBody(BaseModel):
    document_id: str = Field(..., min_length=1)


class CreateChatBody(BaseModel):
    title: Optional[str] = None


class RenameChatBody(BaseModel):
    title: str = Field(..., min_length=1)
