"""
Document status tracker.

uploaded -> processing -> processed | failed

Transitions are conditional updates, so a document that already reached a
terminal state can never be moved back to processing. processing -> processing
is allowed for a retried attempt of the same job.
"""
from datetime import timedelta
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from .errors import DocumentNotFoundError, InvalidStatusTransition
from .logging_config import logger
from .models import Document, DocumentStatus, utcnow

MAX_ERROR_LENGTH = 2000

_ALLOWED_FROM: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.UPLOADED, DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.UPLOADED, DocumentStatus.PROCESSING}),
}


class DocumentStatusTracker:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, document_id: str) -> Optional[Document]:
        with self._session_factory() as db:
            return db.get(Document, document_id)

    def get_status(self, document_id: str) -> Optional[DocumentStatus]:
        with self._session_factory() as db:
            value = db.execute(
                select(Document.status).where(Document.id == document_id)
            ).scalar_one_or_none()
        return DocumentStatus(value) if value is not None else None

    def ensure_processing(self, document_id: str) -> None:
        """
        Raises:
            DocumentNotFoundError: the document was deleted
            InvalidStatusTransition: the document left processing (e.g. failed by the stale sweep)
        """
        current = self.get_status(document_id)
        if current is None:
            raise DocumentNotFoundError(document_id)
        if current != DocumentStatus.PROCESSING:
            raise InvalidStatusTransition(document_id, current.value, DocumentStatus.PROCESSING.value)

    def mark_processing(self, document_id: str) -> None:
        self._transition(document_id, DocumentStatus.PROCESSING, error_message=None)

    def mark_processed(self, document_id: str, page_count: int) -> None:
        self._transition(document_id, DocumentStatus.PROCESSED, page_count=page_count, error_message=None)

    def mark_failed(self, document_id: str, error_message: str) -> None:
        self._transition(
            document_id,
            DocumentStatus.FAILED,
            error_message=(error_message or "")[:MAX_ERROR_LENGTH],
        )

    def fail_stale_processing(self, older_than: timedelta) -> List[str]:
        """
        Fail documents stuck in processing longer than `older_than`.

        Catches documents orphaned by a worker that was killed mid-job.
        Returns the ids that were moved to failed.
        """
        cutoff = utcnow() - older_than
        with self._session_factory() as db, db.begin():
            stale_ids = list(db.execute(
                select(Document.id).where(
                    Document.status == DocumentStatus.PROCESSING.value,
                    Document.updated_at < cutoff,
                )
            ).scalars())
            if stale_ids:
                db.execute(
                    update(Document)
                    .where(
                        Document.id.in_(stale_ids),
                        Document.status == DocumentStatus.PROCESSING.value,
                    )
                    .values(
                        status=DocumentStatus.FAILED.value,
                        error_message="Processing timed out",
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
        if stale_ids:
            logger.warning("Failed stale processing documents", count=len(stale_ids), ids=stale_ids)
        return stale_ids

    def _transition(self, document_id: str, target: DocumentStatus, **values) -> None:
        allowed = [s.value for s in _ALLOWED_FROM[target]]
        with self._session_factory() as db, db.begin():
            result = db.execute(
                update(Document)
                .where(Document.id == document_id, Document.status.in_(allowed))
                .values(status=target.value, updated_at=utcnow(), **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                current = db.execute(
                    select(Document.status).where(Document.id == document_id)
                ).scalar_one_or_none()
                if current is None:
                    raise DocumentNotFoundError(document_id)
                raise InvalidStatusTransition(document_id, current, target.value)
        logger.info("Document status updated", document_id=document_id, status=target.value)
