"""
RAG response-job service.
Attaches retrieved document context to the downstream "generate response" job
when a chat message is created.
"""
from typing import Optional

from ..logging_config import logger
from ..queue import JobQueue
from ..retrieval import RetrievalService
from ..schemas import ConstraintMode, GenerateResponseJob, StudyMode


class ResponseJobService:
    def __init__(self, retrieval: RetrievalService, queue: JobQueue) -> None:
        self._retrieval = retrieval
        self._queue = queue

    def enqueue_response(
        self,
        chat_id: str,
        user_message_id: str,
        assistant_message_id: str,
        query: str,
        study_mode: StudyMode = "simple",
        constraint_mode: ConstraintMode = "allowed",
        top_k: Optional[int] = None,
    ) -> str:
        """
        Retrieve context for `query` and enqueue the response job.

        Retrieval never blocks the message: with no documents, or when the
        search fails, the job goes out without context.
        """
        context = self._retrieval.build_context(chat_id, query, top_k)
        logger.info("Prepared response job", chat_id=chat_id, has_context=context is not None)

        job = GenerateResponseJob(
            chat_id=chat_id,
            user_message_id=user_message_id,
            assistant_message_id=assistant_message_id,
            study_mode=study_mode,
            constraint_mode=constraint_mode,
            rag_context=context,
        )
        return self._queue.enqueue_response(job)
