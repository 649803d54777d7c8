"""
Document service.
Producer side of ingestion (store upload, create metadata, enqueue job), the
deletion path, and status reads for client polling.
"""
import uuid
from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.orm import sessionmaker

from ..errors import DocumentLimitError, DocumentNotFoundError, InvalidUploadError
from ..logging_config import logger
from ..models import Document, DocumentStatus
from ..queue import JobQueue
from ..schemas import DocumentOut, DocumentStatusOut, IngestionJob, UploadResult
from ..status import DocumentStatusTracker
from ..storage import BlobStorage
from ..vector_store import VectorStore

PDF_MAGIC = b"%PDF-"


class DocumentService:
    def __init__(
        self,
        session_factory: sessionmaker,
        storage: BlobStorage,
        queue: JobQueue,
        vector_store: VectorStore,
        tracker: DocumentStatusTracker,
        max_documents_per_user: int = 15,
    ) -> None:
        self._session_factory = session_factory
        self._storage = storage
        self._queue = queue
        self._vector_store = vector_store
        self._tracker = tracker
        self.max_documents_per_user = max_documents_per_user

    # ==================== Upload ====================

    def check_document_limit(self, user_id: str) -> None:
        with self._session_factory() as db:
            count = db.execute(
                select(func.count()).select_from(Document).where(Document.owner_id == user_id)
            ).scalar_one()
        if count >= self.max_documents_per_user:
            raise DocumentLimitError(
                f"Document limit reached. Maximum {self.max_documents_per_user} documents allowed.",
                {"user_id": user_id, "count": count},
            )

    def upload_pdf(self, user_id: str, chat_id: str, file_name: str, data: bytes,
                   mime_type: str = "application/pdf") -> UploadResult:
        """
        Store the raw PDF and enqueue it for ingestion. Returns immediately;
        processing happens in the worker.
        """
        logger.info("Upload started", user_id=user_id, chat_id=chat_id, file_name=file_name,
                    size_mb=round(len(data) / 1024 / 1024, 2))

        if not data:
            raise InvalidUploadError("Uploaded file is empty", {"file_name": file_name})
        if not data.startswith(PDF_MAGIC):
            raise InvalidUploadError("Only PDF files are supported", {"file_name": file_name})

        self.check_document_limit(user_id)

        document_id = str(uuid.uuid4())
        storage_path = f"{user_id}/{chat_id}/{uuid.uuid4()}.pdf"
        self._storage.upload(storage_path, data, content_type="application/pdf")

        with self._session_factory() as db, db.begin():
            db.add(Document(
                id=document_id,
                owner_id=user_id,
                chat_id=chat_id,
                file_name=file_name,
                storage_path=storage_path,
                size_bytes=len(data),
                mime_type=mime_type or "application/pdf",
                status=DocumentStatus.UPLOADED.value,
                page_count=0,
            ))
        logger.info("Document metadata created", document_id=document_id)

        job = IngestionJob(
            document_id=document_id,
            user_id=user_id,
            chat_id=chat_id,
            storage_path=storage_path,
            file_name=file_name,
        )
        try:
            job_id = self._queue.enqueue_ingestion(job)
        except Exception as e:
            # nothing will ever pick the document up, so do not leave it "uploaded"
            self._tracker.mark_failed(document_id, f"Could not queue processing job: {e}")
            raise

        return UploadResult(
            id=document_id,
            file_name=file_name,
            size_bytes=len(data),
            status=DocumentStatus.UPLOADED,
            job_id=job_id,
        )

    # ==================== Reads ====================

    def _get_owned(self, user_id: str, document_id: str) -> Document:
        with self._session_factory() as db:
            doc = db.execute(
                select(Document).where(Document.id == document_id, Document.owner_id == user_id)
            ).scalar_one_or_none()
        if doc is None:
            raise DocumentNotFoundError(document_id)
        return doc

    def get_document_status(self, user_id: str, document_id: str) -> DocumentStatusOut:
        doc = self._get_owned(user_id, document_id)
        status = DocumentStatus(doc.status)
        return DocumentStatusOut(
            id=doc.id,
            status=status,
            page_count=doc.page_count if status == DocumentStatus.PROCESSED else None,
            error_message=doc.error_message if status == DocumentStatus.FAILED else None,
            updated_at=doc.updated_at,
        )

    def list_chat_documents(self, user_id: str, chat_id: str) -> List[DocumentOut]:
        with self._session_factory() as db:
            docs = db.execute(
                select(Document)
                .where(Document.owner_id == user_id, Document.chat_id == chat_id)
                .order_by(Document.created_at.desc())
            ).scalars().all()
        return [DocumentOut.model_validate(d) for d in docs]

    # ==================== Deletion ====================

    def delete_document(self, user_id: str, document_id: str) -> None:
        """Delete the blob, the document's vectors and its metadata."""
        doc = self._get_owned(user_id, document_id)

        self._storage.delete(doc.storage_path)
        self._vector_store.delete_by_document(document_id)

        with self._session_factory() as db, db.begin():
            db.execute(delete(Document).where(Document.id == document_id))

        logger.info("Document deleted", document_id=document_id)
