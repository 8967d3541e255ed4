from sqlalchemy import (
    Column, String, Text, Integer, ForeignKey, BigInteger, TIMESTAMP, UniqueConstraint, text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from pgvector.sqlalchemy import Vector

from . import config

Base = declarative_base()

DOCUMENT_STATUSES = ("pending", "processing", "ready", "error")


class Document(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    filename = Column(Text, nullable=False)
    mime_type = Column(Text)
    size_bytes = Column(BigInteger)
    status = Column(String(16), nullable=False, server_default="pending")
    storage_path = Column(Text)
    error_message = Column(Text)
    lease_token = Column(String)
    lease_expires_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))
    updated_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))


class Chunk(Base):
    __tablename__ = "chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_ordinal"),)
    id = Column(String, primary_key=True)
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(config.EMBED_DIM), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))


class Conversation(Base):
    __tablename__ = "conversations"
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    title = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))
    updated_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))


class Message(Base):
    __tablename__ = "messages"
    id = Column(String, primary_key=True)
    conversation_id = Column(String, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    sources = Column(JSONB)
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("clock_timestamp()"))
