"""
Chat routes.
Queues the assistant response for a new user message, with document context
from the chat's uploads attached when any is relevant.
"""
from fastapi import APIRouter, Depends, Request

from ..schemas import ResponseJobOut, ResponseJobRequest
from ..services.rag_service import ResponseJobService
from .documents import get_user_id

router = APIRouter(prefix="/api", tags=["chat"])


def get_response_jobs(request: Request) -> ResponseJobService:
    return request.app.state.response_jobs


@router.post(
    "/chats/{chat_id}/responses",
    response_model=ResponseJobOut,
    status_code=202,
    dependencies=[Depends(get_user_id)],
)
def queue_response(
    chat_id: str,
    payload: ResponseJobRequest,
    service: ResponseJobService = Depends(get_response_jobs),
):
    job_id = service.enqueue_response(
        chat_id=chat_id,
        user_message_id=payload.user_message_id,
        assistant_message_id=payload.assistant_message_id,
        query=payload.content,
        study_mode=payload.study_mode,
        constraint_mode=payload.constraint_mode,
        top_k=payload.top_k,
    )
    return ResponseJobOut(job_id=job_id)
