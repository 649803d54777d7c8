"""Unit tests for chat-scoped retrieval and context formatting."""

from __future__ import annotations

from unittest.mock import MagicMock

from docrag.errors import EmbeddingProviderError, StorageError
from docrag.retrieval import RetrievalService, format_context_for_llm
from docrag.schemas import ChunkRecord, RetrievedChunk
from docrag.services.rag_service import ResponseJobService


def _seed(vector_store, embedder, chat_id: str, texts) -> None:
    records = [
        ChunkRecord(
            document_id=f"{chat_id}-doc",
            user_id="user-1",
            chat_id=chat_id,
            page_number=i,
            chunk_index=i,
            content=text,
            embedding=embedder.embed_query(text),
        )
        for i, text in enumerate(texts)
    ]
    vector_store.store_batch(records)


class TestRetrieveRelevantChunks:
    def test_most_similar_first(self, embedder, vector_store) -> None:
        _seed(vector_store, embedder, "chat-1", [
            "the quarterly revenue grew in europe",
            "the cat sat on the mat",
            "revenue forecast for next quarter",
        ])

        hits = RetrievalService(embedder, vector_store).retrieve_relevant_chunks(
            "chat-1", "quarterly revenue europe", top_k=2
        )

        assert len(hits) == 2
        assert hits[0].content == "the quarterly revenue grew in europe"
        assert hits[0].similarity >= hits[1].similarity

    def test_scoped_to_chat(self, embedder, vector_store) -> None:
        _seed(vector_store, embedder, "chat-1", ["alpha beta"])
        _seed(vector_store, embedder, "chat-2", ["alpha beta gamma"])

        hits = RetrievalService(embedder, vector_store).retrieve_relevant_chunks("chat-1", "alpha")

        assert {h.document_id for h in hits} == {"chat-1-doc"}

    def test_chat_without_documents(self, embedder, vector_store) -> None:
        assert RetrievalService(embedder, vector_store).retrieve_relevant_chunks("empty", "q") == []

    def test_blank_query(self, embedder, vector_store) -> None:
        assert RetrievalService(embedder, vector_store).retrieve_relevant_chunks("chat-1", "  ") == []

    def test_embedding_failure_degrades_to_empty(self, vector_store) -> None:
        embedder = MagicMock()
        embedder.embed_query.side_effect = EmbeddingProviderError("Embedding API error: 503", 503)

        assert RetrievalService(embedder, vector_store).retrieve_relevant_chunks("chat-1", "q") == []

    def test_search_failure_degrades_to_empty(self, embedder) -> None:
        store = MagicMock()
        store.query_top_k.side_effect = StorageError("Vector search failed", operation="query_top_k")

        assert RetrievalService(embedder, store).retrieve_relevant_chunks("chat-1", "q") == []

    def test_default_top_k(self, embedder, vector_store) -> None:
        _seed(vector_store, embedder, "chat-1", [f"shared word {i}" for i in range(8)])

        hits = RetrievalService(embedder, vector_store, default_top_k=5).retrieve_relevant_chunks(
            "chat-1", "shared word"
        )

        assert len(hits) == 5


class TestFormatContext:
    def test_exact_format(self) -> None:
        chunks = [
            RetrievedChunk(document_id="d1", page_number=0, content="First passage.", similarity=0.9234),
            RetrievedChunk(document_id="d1", page_number=4, content="Second passage.", similarity=0.5),
        ]

        assert format_context_for_llm(chunks) == (
            "DOCUMENT CONTEXT:\n\n"
            "[Document 1, Page 1, Similarity: 92.3%]:\nFirst passage."
            "\n\n---\n\n"
            "[Document 2, Page 5, Similarity: 50.0%]:\nSecond passage."
            "\n\nEND OF DOCUMENT CONTEXT"
        )

    def test_empty(self) -> None:
        assert format_context_for_llm([]) == ""


class TestResponseJobService:
    def test_context_attached(self, embedder, vector_store) -> None:
        _seed(vector_store, embedder, "chat-1", ["solar panel efficiency"])
        queue = MagicMock()
        queue.enqueue_response.return_value = "job-9"
        service = ResponseJobService(RetrievalService(embedder, vector_store), queue)

        job_id = service.enqueue_response("chat-1", "u1", "a1", "solar efficiency", study_mode="interview")

        assert job_id == "job-9"
        job = queue.enqueue_response.call_args.args[0]
        assert job.study_mode == "interview"
        assert job.rag_context.startswith("DOCUMENT CONTEXT:")

    def test_context_omitted_without_hits(self, embedder, vector_store) -> None:
        queue = MagicMock()
        service = ResponseJobService(RetrievalService(embedder, vector_store), queue)

        service.enqueue_response("chat-1", "u1", "a1", "anything")

        job = queue.enqueue_response.call_args.args[0]
        assert job.rag_context is None
