"""
pgvector-backed chunk store.
Writes are append-only per document; reads are scoped to a chat.
"""
from time import perf_counter
from typing import List, Sequence

from sqlalchemy import delete, insert, text as sa_text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import StorageError
from .logging_config import logger
from .models import DocumentChunk
from .schemas import ChunkRecord, RetrievedChunk

_MATCH_SQL = sa_text("""
    SELECT document_id, page_number, chunk_index, content, similarity
    FROM match_document_chunks(CAST(:query_embedding AS vector), :chat_id, :match_count)
""")


class VectorStore:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def store_batch(self, records: Sequence[ChunkRecord]) -> None:
        """
        Persist a batch of chunk records in one bulk insert.

        Raises:
            StorageError: any row was rejected; the batch is reported as failed as a whole
        """
        if not records:
            return
        rows = [r.model_dump() for r in records]
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(DocumentChunk), rows)
        except SQLAlchemyError as e:
            logger.error("Batch insert failed", rows=len(rows), error=str(e))
            raise StorageError(
                "Failed to store vectors",
                operation="store_batch",
                details={"document_id": records[0].document_id, "rows": len(rows)},
            ) from e

    def delete_by_document(self, document_id: str) -> int:
        """Remove every chunk of a document. Returns the number of rows removed."""
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to delete vectors",
                operation="delete_by_document",
                details={"document_id": document_id},
            ) from e
        logger.info("Deleted document vectors", document_id=document_id, rows=removed)
        return removed

    def query_top_k(self, chat_id: str, query_embedding: List[float], k: int) -> List[RetrievedChunk]:
        """
        Return up to k chunks of the chat, most similar first (cosine).
        """
        if k < 1:
            return []
        t = perf_counter()
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    _MATCH_SQL,
                    {
                        "query_embedding": _vector_literal(query_embedding),
                        "chat_id": chat_id,
                        "match_count": k,
                    },
                ).mappings().all()
        except SQLAlchemyError as e:
            raise StorageError(
                "Vector search failed",
                operation="query_top_k",
                details={"chat_id": chat_id},
            ) from e
        logger.info("Similarity search", chat_id=chat_id, hits=len(rows),
                    ms=round((perf_counter() - t) * 1000, 2))
        return [
            RetrievedChunk(
                document_id=r["document_id"],
                page_number=r["page_number"],
                content=r["content"],
                similarity=float(r["similarity"]),
            )
            for r in rows
        ]


def _vector_literal(values: Sequence[float]) -> str:
    """pgvector text form, e.g. '[0.1,0.2]'."""
    return "[" + ",".join(repr(float(v)) for v in values) + "]"
