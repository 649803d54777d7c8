"""
Pydantic schemas for queue payloads, pipeline records and API responses.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import DocumentStatus

StudyMode = Literal["simple", "interview", "step-by-step"]
ConstraintMode = Literal["allowed", "strict"]


class _CamelPayload(BaseModel):
    """Queue payloads travel with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]):
        return cls.model_validate(payload)


class IngestionJob(_CamelPayload):
    """Work item carried from the upload handler to the ingestion worker."""
    document_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    chat_id: str = Field(..., min_length=1)
    storage_path: str = Field(..., min_length=1)
    file_name: str


class GenerateResponseJob(_CamelPayload):
    """Downstream job consumed by the LLM response worker."""
    chat_id: str
    user_message_id: str
    assistant_message_id: str
    study_mode: StudyMode = "simple"
    constraint_mode: ConstraintMode = "allowed"
    rag_context: Optional[str] = None


class ChunkRecord(BaseModel):
    """A chunk ready to be persisted with its embedding."""
    document_id: str
    user_id: str
    chat_id: str
    page_number: int = 0
    chunk_index: int = Field(..., ge=0)
    content: str
    embedding: List[float]


class RetrievedChunk(BaseModel):
    """A chunk returned by similarity search; never persisted."""
    document_id: str
    page_number: int
    content: str
    similarity: float


class IngestionProgress(BaseModel):
    document_id: str
    batches_done: int
    chunks_stored: int


class IngestionResult(BaseModel):
    document_id: str
    page_count: int
    total_chunks: int


class DocumentStatusOut(BaseModel):
    """What the API returns to clients polling an upload."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    status: DocumentStatus
    page_count: Optional[int] = None
    error_message: Optional[str] = None
    updated_at: Optional[datetime] = None


class DocumentOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    file_name: str
    size_bytes: int
    status: DocumentStatus
    page_count: int
    created_at: Optional[datetime] = None


class UploadResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    file_name: str
    size_bytes: int
    status: DocumentStatus
    job_id: Optional[str] = None


class ResponseJobRequest(BaseModel):
    """Request body for queueing an assistant response to a new user message."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_message_id: str = Field(..., min_length=1)
    assistant_message_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, description="The user's message text")
    study_mode: StudyMode = "simple"
    constraint_mode: ConstraintMode = "allowed"
    top_k: Optional[int] = Field(None, ge=1, le=20, description="Number of chunks to retrieve")


class ResponseJobOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
