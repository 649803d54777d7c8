from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base
from pgvector.sqlalchemy import Vector

Base = declarative_base()

EMBEDDING_DIMENSIONS = 384


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Lifecycle of an uploaded document: uploaded -> processing -> processed | failed."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.PROCESSED, DocumentStatus.FAILED)


class Document(Base):
    __tablename__ = "documents"
    id = Column(String(36), primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    chat_id = Column(String(64), nullable=False, index=True)
    file_name = Column(Text, nullable=False)
    storage_path = Column(Text, nullable=False, unique=True)
    size_bytes = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(Text, nullable=False, default="application/pdf")
    status = Column(String(16), nullable=False, default=DocumentStatus.UPLOADED.value)
    page_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())


class DocumentChunk(Base):
    __tablename__ = "document_chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index", name="uq_document_chunks_doc_index"),)
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    document_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    chat_id = Column(String(64), nullable=False, index=True)
    page_number = Column(Integer, nullable=False, default=0)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
