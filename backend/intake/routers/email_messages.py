"""
Email message API endpoints.

  GET    /api/email-messages                          list (paged by received_at cursor)
  DELETE /api/email-messages                          clear all messages
  POST   /api/email-messages/{id}/process             run the extraction pipeline
  GET    /api/email-messages/{id}/attachments/{aid}/text
                                                      debug: raw PDF text of one attachment
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from intake.auth import get_optional_user
from intake.models.email_message import EmailMessageList, EmailProcessingStatus
from intake.models.work_order import ProcessEmailResult
from intake.plans import ExtractionCapabilities, get_extraction_capabilities
from intake.services.attachment_loader import load_attachment_bytes
from intake.services.email_message_repo import EmailMessageRepository, get_email_message_repo
from intake.services.pdf_text import ExtractionError, extract_text_from_pdf_bytes
from intake.services.processing import process_single_email_message
from intake.services.work_order_repo import WorkOrderRepository, get_work_order_repo

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=EmailMessageList)
def list_email_messages(
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[str] = Query(None, description="received_at of the last message on the previous page"),
    status: Optional[EmailProcessingStatus] = Query(None),
    repo: EmailMessageRepository = Depends(get_email_message_repo),
):
    """
    List email messages, newest received first.

    The first page (no cursor) is filtered to status "new" unless another
    status is requested. Later pages return everything older than the cursor,
    filtered by status only when one is given.
    """
    if cursor:
        messages = repo.list_latest_after(cursor, limit + 1)
        if status:
            messages = [m for m in messages if m.processing_status == status]
    elif status in (None, EmailProcessingStatus.NEW):
        messages = repo.list_new(limit + 1)
    else:
        messages = [m for m in repo.list_latest(limit + 1) if m.processing_status == status]

    has_more = len(messages) > limit
    return EmailMessageList(email_messages=messages[:limit], has_more=has_more)


@router.delete("")
def clear_email_messages(repo: EmailMessageRepository = Depends(get_email_message_repo)):
    repo.clear()
    return {"success": True}


@router.post("/{email_id}/process", response_model=ProcessEmailResult)
def process_email_message(
    email_id: str,
    user_id: Optional[str] = Depends(get_optional_user),
    capabilities: ExtractionCapabilities = Depends(get_extraction_capabilities),
    email_repo: EmailMessageRepository = Depends(get_email_message_repo),
    work_order_repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    """
    Extract work orders from one stored email.

    Sync endpoint: the model call and PDF fetches block, so FastAPI runs it
    in the threadpool.
    """
    result = process_single_email_message(
        email_id,
        user_id,
        email_repo=email_repo,
        work_order_repo=work_order_repo,
        capabilities=capabilities,
    )
    if result is None:
        raise HTTPException(status_code=404, detail="Email message not found")
    return result


@router.get("/{email_id}/attachments/{attachment_id}/text")
def get_attachment_text(
    email_id: str,
    attachment_id: str,
    repo: EmailMessageRepository = Depends(get_email_message_repo),
):
    """Return the text the extraction pipeline would see for one PDF attachment."""
    email = repo.get_by_id(email_id)
    if email is None:
        raise HTTPException(status_code=404, detail="Email message not found")

    attachment = next((a for a in email.attachments if a.id == attachment_id), None)
    if attachment is None:
        raise HTTPException(status_code=404, detail="Attachment not found")
    if not attachment.is_pdf():
        raise HTTPException(status_code=400, detail="Attachment is not a PDF")

    buffer = load_attachment_bytes(attachment)
    if buffer is None:
        raise HTTPException(status_code=502, detail="Could not load attachment")

    try:
        text = extract_text_from_pdf_bytes(buffer)
    except ExtractionError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "email_id": email.id,
        "attachment_id": attachment.id,
        "filename": attachment.filename,
        "length": len(text),
        "text": text,
    }
