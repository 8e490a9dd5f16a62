"""
Manual PDF upload endpoint.

POST /api/process-pdf
  multipart/form-data: file (PDF), email_text (optional)
  Headers: X-Plan (optional), X-Anthropic-Key (FREE_BYOK plan only)

Stateless converter: returns parsed work orders and a CSV; nothing is saved.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile

from intake.models.work_order import ManualProcessResponse
from intake.plans import Plan, get_request_plan, resolve_capabilities
from intake.services.manual_upload import (
    ManualUploadError,
    extract_upload_text,
    process_uploaded_pdf,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ManualProcessResponse)
def process_pdf(
    file: UploadFile = File(...),
    email_text: Optional[str] = Form(None),
    plan: Plan = Depends(get_request_plan),
    x_anthropic_key: Optional[str] = Header(None),
):
    """
    Parse one uploaded PDF.

    The file is validated first (400 for a non-PDF or a PDF without text).
    Then FREE_BYOK requires the caller's key (400 without it) and paid plans
    require the server key (500 without it). The key is used for this
    request only and never logged.
    """
    content = file.file.read()
    filename = file.filename or "upload.pdf"

    try:
        pdf_text = extract_upload_text(content, filename, file.content_type)
    except ManualUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    capabilities = resolve_capabilities(plan, x_anthropic_key)
    if not capabilities.can_use_ai_extraction:
        if plan == Plan.FREE_BYOK:
            raise HTTPException(
                status_code=400,
                detail="An Anthropic API key is required for the Free (BYOK) plan. Send it in X-Anthropic-Key.",
            )
        logger.error("Missing ANTHROPIC_API_KEY environment variable")
        raise HTTPException(
            status_code=500,
            detail="Server configuration error: Anthropic API key not configured",
        )

    try:
        return process_uploaded_pdf(pdf_text, filename, email_text, capabilities)
    except ManualUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
