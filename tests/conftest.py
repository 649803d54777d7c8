"""Shared fixtures: a generated PDF, in-memory collaborators and a SQLite session factory."""

from __future__ import annotations

import hashlib
import math
from typing import Dict, List, Optional, Sequence, Set

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from docrag.db import create_session_factory
from docrag.embedding import EmbeddingProvider
from docrag.errors import BlobNotFoundError, EmbeddingProviderError, StorageError
from docrag.models import Base, Document, DocumentStatus, utcnow
from docrag.schemas import ChunkRecord, RetrievedChunk
from docrag.status import DocumentStatusTracker

DIMENSIONS = 384


# ---------------------------------------------------------------------------
# PDF fixture
# ---------------------------------------------------------------------------


def make_pdf(pages: Sequence[str]) -> bytes:
    """Build a minimal valid PDF with one Helvetica text line per page."""
    page_count = len(pages)
    bodies: List[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        (
            "<< /Type /Pages /Kids ["
            + " ".join(f"{4 + 2 * i} 0 R" for i in range(page_count))
            + f"] /Count {page_count} >>"
        ).encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for i, text in enumerate(pages):
        bodies.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {5 + 2 * i} 0 R >>"
            ).encode()
        )
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 10 Tf 50 750 Td ({escaped}) Tj ET".encode() if text else b""
        bodies.append(
            b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream"
        )

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(bodies, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_offset = len(out)
    out += f"xref\n0 {len(bodies) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {len(bodies) + 1} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n".encode()
    return bytes(out)


def page_words(page: int, count: int) -> str:
    return " ".join(f"p{page}w{i}" for i in range(count))


@pytest.fixture
def three_page_pdf() -> bytes:
    """Three pages of 300 words each (900 words total)."""
    return make_pdf([page_words(p, 300) for p in range(3)])


@pytest.fixture
def blank_pdf() -> bytes:
    return make_pdf(["", ""])


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeBlobStorage:
    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise BlobNotFoundError(path)
        return self.objects[path]

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        self.objects[path] = data

    def delete(self, path: str) -> None:
        self.deleted.append(path)
        self.objects.pop(path, None)


class FakeEmbeddingProvider(EmbeddingProvider):
    """Hashed bag-of-words vectors: texts sharing words get similar embeddings."""

    def __init__(self, dimensions: int = DIMENSIONS, max_batch_size: int = 50,
                 fail_on_calls: Optional[Set[int]] = None) -> None:
        super().__init__(dimensions, max_batch_size)
        self.calls: List[List[str]] = []
        self.fail_on_calls = fail_on_calls or set()

    def _embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if len(self.calls) in self.fail_on_calls:
            raise EmbeddingProviderError("Embedding API error: 500", status_code=500)
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> List[float]:
        vec = [0.0] * self.dimensions
        for word in text.lower().split():
            digest = hashlib.md5(word.encode()).digest()
            vec[int.from_bytes(digest[:4], "big") % self.dimensions] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]


class InMemoryVectorStore:
    def __init__(self) -> None:
        self.records: List[ChunkRecord] = []
        self.fail_writes = False

    def store_batch(self, records: Sequence[ChunkRecord]) -> None:
        if self.fail_writes:
            raise StorageError("Failed to store vectors", operation="store_batch")
        self.records.extend(records)

    def delete_by_document(self, document_id: str) -> int:
        before = len(self.records)
        self.records = [r for r in self.records if r.document_id != document_id]
        return before - len(self.records)

    def query_top_k(self, chat_id: str, query_embedding: List[float], k: int) -> List[RetrievedChunk]:
        scored = [
            (sum(a * b for a, b in zip(r.embedding, query_embedding)), r)
            for r in self.records
            if r.chat_id == chat_id
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            RetrievedChunk(
                document_id=r.document_id,
                page_number=r.page_number,
                content=r.content,
                similarity=score,
            )
            for score, r in scored[:k]
        ]


@pytest.fixture
def blob_storage() -> FakeBlobStorage:
    return FakeBlobStorage()


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def db_engine():
    """SQLite stand-in for Postgres holding both tables; vectors are stored as text."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def tracker(session_factory) -> DocumentStatusTracker:
    return DocumentStatusTracker(session_factory)


def add_document(session_factory, document_id: str = "doc-1", owner_id: str = "user-1",
                 chat_id: str = "chat-1", status: DocumentStatus = DocumentStatus.UPLOADED,
                 storage_path: Optional[str] = None, updated_at=None) -> None:
    now = utcnow()
    with session_factory() as db, db.begin():
        db.add(Document(
            id=document_id,
            owner_id=owner_id,
            chat_id=chat_id,
            file_name=f"{document_id}.pdf",
            storage_path=storage_path or f"{owner_id}/{chat_id}/{document_id}.pdf",
            size_bytes=1024,
            mime_type="application/pdf",
            status=status.value,
            page_count=0,
            created_at=now,
            updated_at=updated_at or now,
        ))
