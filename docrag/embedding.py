"""
Embedding providers.
Map an ordered batch of texts to fixed-dimension vectors. A call either returns
one vector per input or raises EmbeddingProviderError; retries are left to
the job queue.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
import openai
from openai import OpenAI

from .config import Settings
from .errors import EmbeddingProviderError
from .logging_config import logger


class EmbeddingProvider(ABC):
    def __init__(self, dimensions: int, max_batch_size: int = 50) -> None:
        self.dimensions = dimensions
        self.max_batch_size = max_batch_size

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in order. Empty input returns [] without calling the provider.

        Raises:
            ValueError: batch larger than max_batch_size (caller contract)
            EmbeddingProviderError: provider failure or malformed payload
        """
        if not texts:
            return []
        if len(texts) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(texts)} texts exceeds max batch size {self.max_batch_size}"
            )
        vectors = self._embed(texts)
        self._validate(texts, vectors)
        return vectors

    def embed_query(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def _validate(self, texts: List[str], vectors: List[List[float]]) -> None:
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Provider returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        for i, vec in enumerate(vectors):
            if not vec or len(vec) != self.dimensions:
                raise EmbeddingProviderError(
                    f"Embedding {i} has dimension {len(vec) if vec else 0}, expected {self.dimensions}"
                )

    @abstractmethod
    def _embed(self, texts: List[str]) -> List[List[float]]:
        ...


class RemoteEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI-compatible /embeddings endpoint (Jina AI by default).

    The SDK client is created with max_retries=0 so a failing call surfaces
    immediately to the job.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.jina.ai/v1",
        model: str = "jina-embeddings-v3",
        dimensions: int = 384,
        task: Optional[str] = "text-matching",
        timeout: float = 30.0,
        max_batch_size: int = 50,
        client: Optional[OpenAI] = None,
    ) -> None:
        super().__init__(dimensions, max_batch_size)
        self.model = model
        self.task = task
        self._client = client or OpenAI(
            api_key=api_key or "missing-key",
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def _embed(self, texts: List[str]) -> List[List[float]]:
        extra_body = {"task": self.task} if self.task else None
        try:
            response = self._client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimensions,
                encoding_format="float",
                extra_body=extra_body,
            )
        except openai.APIStatusError as e:
            logger.error("Embedding API error", status=e.status_code, batch=len(texts))
            raise EmbeddingProviderError(
                f"Embedding API error: {e.status_code}", status_code=e.status_code
            ) from e
        except openai.APIError as e:
            logger.error("Embedding API unreachable", error=str(e), batch=len(texts))
            raise EmbeddingProviderError(f"Embedding API request failed: {e}") from e

        data = getattr(response, "data", None)
        if not data:
            raise EmbeddingProviderError("Embedding API returned no data")
        try:
            items = sorted(data, key=lambda item: item.index)
            return [list(item.embedding) for item in items]
        except (AttributeError, TypeError) as e:
            raise EmbeddingProviderError(f"Malformed embedding payload: {e}") from e


class LocalEmbeddingProvider(EmbeddingProvider):
    """
    In-process sentence-transformers model. Needs the `local` extra.
    """

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
                 dimensions: int = 384, max_batch_size: int = 50) -> None:
        super().__init__(dimensions, max_batch_size)
        self.model_name = model_name
        self._model = None

    def preload(self):
        """Load the model up front to avoid first-job delay."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            logger.info("Loading embedding model", model=self.model_name)

            self._model = SentenceTransformer(
                self.model_name,
                tokenizer_kwargs={"clean_up_tokenization_spaces": False},
            )

            # Warm up with a test embedding
            self._model.encode(["test"], normalize_embeddings=True, show_progress_bar=False)
            logger.info("Embedding model loaded", model=self.model_name)
        return self._model

    def _embed(self, texts: List[str]) -> List[List[float]]:
        model = self.preload()
        try:
            vecs = model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
        except (RuntimeError, ValueError) as e:
            raise EmbeddingProviderError(f"Local embedding failed: {e}") from e
        if isinstance(vecs, np.ndarray):
            return vecs.tolist()
        return [list(v) for v in vecs]


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "local":
        return LocalEmbeddingProvider(
            model_name=settings.local_embedding_model,
            dimensions=settings.embedding_dimensions,
            max_batch_size=settings.embedding_max_batch_size,
        )
    if not settings.embedding_api_key:
        logger.warning("EMBEDDING_API_KEY is not set; remote embedding calls will be rejected")
    return RemoteEmbeddingProvider(
        api_key=settings.embedding_api_key,
        base_url=settings.embedding_api_url,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        task=settings.embedding_task,
        timeout=settings.embedding_timeout_seconds,
        max_batch_size=settings.embedding_max_batch_size,
    )
