"""
Job queue on Celery + Redis.

Producers enqueue by task name so they never import worker code. The ingestion
consumer runs one document at a time with late acks; retry count and backoff
come from an explicit RetryPolicy rather than library defaults.
"""
from typing import Any, Dict, Optional

import structlog
from celery import Celery

from .config import RetryPolicy, Settings
from .errors import DocRagError, DocumentNotFoundError, InvalidStatusTransition
from .logging_config import logger
from .pipeline import IngestionPipeline
from .schemas import GenerateResponseJob, IngestionJob, IngestionProgress, IngestionResult
from .status import DocumentStatusTracker

INGESTION_QUEUE = "rag-processing"
RESPONSE_QUEUE = "llm-jobs"
PROCESS_DOCUMENT_TASK = "rag.process_document"
GENERATE_RESPONSE_TASK = "llm.generate_response"


def create_celery_app(settings: Settings, name: str = "docrag") -> Celery:
    """Build a Celery app bound to the Redis broker. Call once per process."""
    app = Celery(name, broker=settings.redis_url)
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_ignore_result=True,
        # at-least-once: a job is acknowledged only after it finishes
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=1,
        broker_connection_retry_on_startup=True,
        task_routes={
            PROCESS_DOCUMENT_TASK: {"queue": INGESTION_QUEUE},
            GENERATE_RESPONSE_TASK: {"queue": RESPONSE_QUEUE},
        },
    )
    return app


class JobQueue:
    """
    Producer-side handle on the queue.

    Owns the Celery app it is given; close() releases the broker connections.
    """

    def __init__(self, app: Celery, retry_policy: RetryPolicy) -> None:
        self._app = app
        self.retry_policy = retry_policy

    @property
    def app(self) -> Celery:
        return self._app

    def enqueue_ingestion(self, job: IngestionJob) -> str:
        result = self._app.send_task(
            PROCESS_DOCUMENT_TASK,
            kwargs={"payload": job.to_payload()},
            queue=INGESTION_QUEUE,
        )
        logger.info("Ingestion job queued", job_id=result.id, document_id=job.document_id)
        return result.id

    def enqueue_response(self, job: GenerateResponseJob) -> str:
        result = self._app.send_task(
            GENERATE_RESPONSE_TASK,
            kwargs={"payload": job.to_payload()},
            queue=RESPONSE_QUEUE,
        )
        logger.info(
            "Response job queued",
            job_id=result.id,
            chat_id=job.chat_id,
            with_context=job.rag_context is not None,
        )
        return result.id

    def close(self) -> None:
        self._app.close()

    def __enter__(self) -> "JobQueue":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class IngestionConsumer:
    """
    Runs one attempt of an ingestion job and applies the terminal-failure rule:
    the document is marked failed only when the last attempt fails, so it stays
    processing while retries are pending.
    """

    def __init__(self, pipeline: IngestionPipeline, tracker: DocumentStatusTracker,
                 retry_policy: RetryPolicy) -> None:
        self.pipeline = pipeline
        self.tracker = tracker
        self.retry_policy = retry_policy

    def is_last_attempt(self, attempt: int) -> bool:
        return attempt >= self.retry_policy.attempts

    def handle(self, job: IngestionJob, attempt: int = 1) -> Optional[IngestionResult]:
        """
        Returns None without retrying when the document no longer exists,
        already reached a terminal state, or was deleted or finished elsewhere
        while this attempt ran.
        """
        current = self.tracker.get_status(job.document_id)
        if current is None:
            logger.warning("Skipping job for deleted document")
            return None
        if current.is_terminal:
            logger.warning("Skipping job for finished document", status=current.value)
            return None

        try:
            return self.pipeline.run(job, on_progress=_log_progress)
        except DocumentNotFoundError:
            # writes may have landed after the delete removed the vectors
            removed = self.pipeline.vector_store.delete_by_document(job.document_id)
            logger.warning("Document deleted during ingestion", removed_chunks=removed)
            return None
        except InvalidStatusTransition as exc:
            logger.warning("Document left processing during ingestion", error=str(exc))
            return None
        except Exception as exc:
            if self.is_last_attempt(attempt):
                logger.error("Ingestion failed, retries exhausted", error=str(exc),
                             kind=_error_kind(exc))
                self.tracker.mark_failed(job.document_id, str(exc))
            else:
                logger.warning(
                    "Ingestion attempt failed",
                    error=str(exc),
                    kind=_error_kind(exc),
                    retry_in_s=self.retry_policy.delay_seconds(attempt),
                )
            raise


def register_ingestion_task(app: Celery, consumer: IngestionConsumer):
    """Register the ingestion task on `app`, bound to an explicit consumer."""
    policy = consumer.retry_policy

    @app.task(
        bind=True,
        name=PROCESS_DOCUMENT_TASK,
        shared=False,
        max_retries=policy.attempts - 1,
        acks_late=True,
    )
    def process_document(self, payload: Dict[str, Any]):
        job = IngestionJob.from_payload(payload)
        attempt = self.request.retries + 1
        with structlog.contextvars.bound_contextvars(
            job_id=self.request.id, document_id=job.document_id, attempt=attempt,
        ):
            logger.info("Job received", file_name=job.file_name, chat_id=job.chat_id)
            try:
                result = consumer.handle(job, attempt)
            except Exception as exc:
                if consumer.is_last_attempt(attempt):
                    raise
                raise self.retry(exc=exc, countdown=policy.delay_seconds(attempt))
            if result is None:
                return None
            logger.info("Job completed", pages=result.page_count, chunks=result.total_chunks)
            return result.model_dump()

    return process_document


def _log_progress(progress: IngestionProgress) -> None:
    logger.debug("Ingestion progress", batches=progress.batches_done, chunks=progress.chunks_stored)


def _error_kind(exc: Exception) -> str:
    if isinstance(exc, DocRagError):
        return exc.kind.value
    return type(exc).__name__
