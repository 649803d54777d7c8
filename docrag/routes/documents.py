"""
Document API routes.
Handles upload, status polling, listing per chat, and deletion.
"""
from typing import List

from fastapi import APIRouter, Depends, File, Header, HTTPException, Request, UploadFile

from ..logging_config import logger
from ..schemas import DocumentOut, DocumentStatusOut, UploadResult
from ..services.document_service import DocumentService

router = APIRouter(prefix="/api", tags=["documents"])


def get_user_id(x_user_id: str = Header(default="")) -> str:
    """Caller identity, set by the auth layer in front of this service."""
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_document_service(request: Request) -> DocumentService:
    return request.app.state.document_service


# ==================== Upload ====================

@router.post("/chats/{chat_id}/documents", response_model=UploadResult, status_code=202)
async def upload_document(
    chat_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_user_id),
    service: DocumentService = Depends(get_document_service),
):
    """
    Accept a PDF for background ingestion.

    Returns as soon as the file is stored and the job is queued; poll
    /api/documents/{id}/status for progress.
    """
    data = await file.read()
    return service.upload_pdf(
        user_id=user_id,
        chat_id=chat_id,
        file_name=file.filename or "document.pdf",
        data=data,
        mime_type=file.content_type or "application/pdf",
    )


# ==================== Status / Listing ====================

@router.get("/documents/{document_id}/status", response_model=DocumentStatusOut)
def document_status(
    document_id: str,
    user_id: str = Depends(get_user_id),
    service: DocumentService = Depends(get_document_service),
):
    return service.get_document_status(user_id, document_id)


@router.get("/chats/{chat_id}/documents", response_model=List[DocumentOut])
def list_chat_documents(
    chat_id: str,
    user_id: str = Depends(get_user_id),
    service: DocumentService = Depends(get_document_service),
):
    documents = service.list_chat_documents(user_id, chat_id)
    logger.info("Listed documents", chat_id=chat_id, count=len(documents))
    return documents


# ==================== Deletion ====================

@router.delete("/documents/{document_id}")
def delete_document(
    document_id: str,
    user_id: str = Depends(get_user_id),
    service: DocumentService = Depends(get_document_service),
):
    """Delete a document together with its stored file and chunks."""
    service.delete_document(user_id, document_id)
    return {"ok": True, "deleted": document_id}
