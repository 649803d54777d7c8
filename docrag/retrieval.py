from typing import List, Optional

from .embedding import EmbeddingProvider
from .logging_config import logger
from .schemas import RetrievedChunk
from .vector_store import VectorStore


class RetrievalService:
    """
    Chat-scoped similarity search used to add document context to a prompt.
    Failures degrade to "no context" instead of blocking the chat flow.
    """

    def __init__(self, embedder: EmbeddingProvider, vector_store: VectorStore, default_top_k: int = 5) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.default_top_k = default_top_k

    def retrieve_relevant_chunks(self, chat_id: str, query: str, top_k: Optional[int] = None) -> List[RetrievedChunk]:
        """
        Search for chunks of the chat's documents similar to `query`.

        Parameters:
        chat_id (str): Chat whose documents are searched.
        query (str): The natural-language query.
        top_k (int): Maximum number of chunks. Defaults to default_top_k.

        Returns:
        List[RetrievedChunk]: Most similar first; empty on no match or on any failure.
        """
        k = top_k or self.default_top_k
        if not query or not query.strip():
            return []
        try:
            query_embedding = self.embedder.embed_query(query)
            chunks = self.vector_store.query_top_k(chat_id, query_embedding, k)
        except Exception as e:
            logger.error("Retrieval failed", chat_id=chat_id, error=str(e), kind=type(e).__name__)
            return []

        if not chunks:
            logger.info("No relevant chunks found", chat_id=chat_id)
            return []

        logger.info("Found relevant chunks", chat_id=chat_id, count=len(chunks))
        return chunks

    def build_context(self, chat_id: str, query: str, top_k: Optional[int] = None) -> Optional[str]:
        """Retrieve and format in one step; None when there is nothing to add."""
        context = format_context_for_llm(self.retrieve_relevant_chunks(chat_id, query, top_k))
        return context or None


def format_context_for_llm(chunks: List[RetrievedChunk]) -> str:
    """Render retrieved chunks as one delimited block for prompt injection."""
    if not chunks:
        return ""

    parts = [
        f"[Document {idx + 1}, Page {chunk.page_number + 1}, "
        f"Similarity: {chunk.similarity * 100:.1f}%]:\n{chunk.content}"
        for idx, chunk in enumerate(chunks)
    ]
    return "DOCUMENT CONTEXT:\n\n" + "\n\n---\n\n".join(parts) + "\n\nEND OF DOCUMENT CONTEXT"
