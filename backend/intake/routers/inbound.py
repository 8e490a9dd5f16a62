"""
Inbound email webhook router.

Receives provider webhooks, normalises them via the inbound_email_adapter
service and stores the result as an EmailMessage with status "new".
Processing is a separate, explicit step (POST /api/email-messages/{id}/process).

Environment variables
---------------------
INBOUND_EMAIL_SECRET   Shared secret checked in the X-Inbound-Secret header.

Provider selection: X-Email-Provider header, else ?provider= query, else "test".

Endpoints:
  POST /api/inbound-email   provider webhook (auth: X-Inbound-Secret)
"""

import logging
import os
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from intake.models.email_message import EmailAttachment, EmailMessageInput
from intake.models.inbound_email import InboundAttachment, InboundEmail
from intake.services.email_message_repo import EmailMessageRepository, get_email_message_repo
from intake.services.inbound_email_adapter import normalize_webhook
from intake.services.storage import get_signed_url, upload_email_attachment

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Webhook authentication dependency
# ---------------------------------------------------------------------------

def _verify_inbound_secret(x_inbound_secret: Optional[str] = Header(None)) -> None:
    """
    Check the shared secret.

    500 when INBOUND_EMAIL_SECRET is not configured, 401 when the header is
    missing or does not match.
    """
    expected = os.getenv("INBOUND_EMAIL_SECRET")
    if not expected:
        logger.error("INBOUND_EMAIL_SECRET not set; rejecting inbound webhook")
        raise HTTPException(status_code=500, detail="Server misconfigured")

    if not x_inbound_secret or x_inbound_secret != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _store_attachment(att: InboundAttachment, message_key: str) -> Optional[str]:
    """
    Resolve an attachment's storage location, uploading inline bytes first.

    Upload failures are logged and leave the attachment without a location;
    the email is still stored and rule-based extraction can still use the
    filename.
    """
    if att.storage_location or not att.content:
        return att.storage_location

    try:
        path = upload_email_attachment(att.content, att.filename, att.content_type, message_key)
        return get_signed_url(path)
    except Exception as e:
        logger.error(f"Attachment upload failed for {att.filename!r}: {e}")
        return None


def _to_email_message_input(email: InboundEmail) -> EmailMessageInput:
    message_key = uuid4().hex
    attachments = [
        EmailAttachment(
            id=att.id or str(uuid4()),
            filename=att.filename,
            mime_type=att.content_type,
            size_bytes=att.size_bytes,
            storage_location=_store_attachment(att, message_key),
        )
        for att in email.attachments
    ]

    return EmailMessageInput(
        provider=email.provider,
        external_id=email.external_id,
        from_address=email.from_address,
        to_address=email.to_address,
        subject=email.subject,
        body_text=email.body_text,
        received_at=email.received_at,
        attachments=attachments,
    )


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.post("")
def receive_inbound_email(
    payload: dict,
    provider: Optional[str] = Query(None),
    x_email_provider: Optional[str] = Header(None),
    _: None = Depends(_verify_inbound_secret),
    repo: EmailMessageRepository = Depends(get_email_message_repo),
) -> dict:
    """
    Provider-agnostic inbound email webhook receiver.

    Responds {"ok": true, "id": <email message id>}; 400 for unknown providers.
    """
    resolved = (x_email_provider or provider or "test").lower()

    try:
        email = normalize_webhook(payload, provider=resolved)
    except ValueError as exc:
        logger.error(f"Webhook normalization failed: {exc}")
        raise HTTPException(status_code=400, detail=str(exc))

    saved = repo.save(_to_email_message_input(email))
    logger.info(
        f"Stored inbound email {saved.id} from provider {resolved!r} "
        f"({saved.pdf_attachment_count} PDF attachment(s))"
    )
    return {"ok": True, "id": saved.id}
