"""
Ingestion pipeline: download -> extract -> chunk -> embed -> store, in small batches.

Only one batch of chunks (and its embeddings) is alive at a time; each batch is
dropped before the next one is pulled from the lazy chunk sequence.
"""
import time
from itertools import islice
from typing import Callable, Iterator, List, Optional

from .chunking import Chunker, TextChunk
from .embedding import EmbeddingProvider
from .errors import BlobNotFoundError, BlobStorageError, DownloadError
from .logging_config import logger
from .models import DocumentStatus
from .schemas import ChunkRecord, IngestionJob, IngestionProgress, IngestionResult
from .status import DocumentStatusTracker
from .storage import BlobStorage
from .text_extraction import extract_pdf_text
from .vector_store import VectorStore

ProgressCallback = Callable[[IngestionProgress], None]


class IngestionPipeline:
    def __init__(
        self,
        storage: BlobStorage,
        chunker: Chunker,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        tracker: DocumentStatusTracker,
        batch_size: int = 5,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.storage = storage
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.tracker = tracker
        self.batch_size = batch_size

    def run(self, job: IngestionJob, on_progress: Optional[ProgressCallback] = None) -> IngestionResult:
        """
        Ingest one document.

        Marks the document processing, then processed with its page count once
        every batch is stored. Any error propagates to the caller; chunks from
        batches that were already stored stay in the vector store until the
        next attempt starts, which clears them before writing again.

        Raises:
            DownloadError, ExtractionError, EmbeddingProviderError, StorageError
            DocumentNotFoundError: the document was deleted while ingesting
            InvalidStatusTransition: the document left processing while ingesting
        """
        start = time.perf_counter()
        previous = self.tracker.get_status(job.document_id)
        self.tracker.mark_processing(job.document_id)
        logger.info("Ingestion started", document_id=job.document_id, file_name=job.file_name)

        if previous == DocumentStatus.PROCESSING:
            # chunk indices restart at 0, so a partial earlier attempt must go first
            removed = self.vector_store.delete_by_document(job.document_id)
            logger.info("Cleared chunks from earlier attempt", removed=removed)

        data = self._download(job.storage_path)
        logger.info("Document downloaded", size_mb=round(len(data) / 1024 / 1024, 2))
        extracted = extract_pdf_text(data)
        del data

        total_chunks = 0
        batches_done = 0
        chunks = iter(self.chunker.chunk(extracted.text, extracted.page_word_offsets))
        for batch in _batched(chunks, self.batch_size):
            self._process_batch(job, batch)
            total_chunks += len(batch)
            batches_done += 1
            logger.info("Stored batch", batch=batches_done, chunks=len(batch), total_chunks=total_chunks)
            if on_progress is not None:
                on_progress(IngestionProgress(
                    document_id=job.document_id,
                    batches_done=batches_done,
                    chunks_stored=total_chunks,
                ))

        self.tracker.mark_processed(job.document_id, extracted.page_count)
        logger.info(
            "Ingestion complete",
            document_id=job.document_id,
            pages=extracted.page_count,
            chunks=total_chunks,
            time_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return IngestionResult(
            document_id=job.document_id,
            page_count=extracted.page_count,
            total_chunks=total_chunks,
        )

    def _download(self, storage_path: str) -> bytes:
        try:
            return self.storage.download(storage_path)
        except BlobNotFoundError as e:
            raise DownloadError(f"Source file missing: {storage_path}", {"path": storage_path}) from e
        except BlobStorageError as e:
            raise DownloadError(f"Download failed: {e.message}", {"path": storage_path}) from e

    def _process_batch(self, job: IngestionJob, batch: List[TextChunk]) -> None:
        embeddings = self.embedder.embed_batch([c.content for c in batch])
        records = [
            ChunkRecord(
                document_id=job.document_id,
                user_id=job.user_id,
                chat_id=job.chat_id,
                page_number=chunk.page_number,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=vector,
            )
            for chunk, vector in zip(batch, embeddings)
        ]
        self.tracker.ensure_processing(job.document_id)
        self.vector_store.store_batch(records)


def _batched(items: Iterator[TextChunk], size: int) -> Iterator[List[TextChunk]]:
    while True:
        batch = list(islice(items, size))
        if not batch:
            return
        yield batch
