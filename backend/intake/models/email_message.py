"""
Pydantic models for inbound email messages.

An EmailMessage is the canonical, provider-agnostic record created by the
inbound webhook. The extraction pipeline reads it and writes back exactly one
status transition per processing attempt:

  new -> processed | skipped_duplicate

There is no intermediate "processing" state; a failed attempt leaves the
message as "new" so it can be retried manually.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class EmailProcessingStatus(str, Enum):
    NEW = "new"
    PROCESSED = "processed"
    SKIPPED_DUPLICATE = "skipped_duplicate"


class EmailAttachment(BaseModel):
    """
    A single attachment reference.

    storage_location is either a local filesystem path
    (e.g. /var/app/uploads/email-attachments/1234.pdf) or an HTTP(S) URL
    (e.g. a signed Supabase Storage URL).
    """

    id: str
    filename: str
    mime_type: str
    size_bytes: Optional[int] = None
    storage_location: Optional[str] = None

    def is_pdf(self) -> bool:
        # Senders use many PDF content types (application/pdf, application/x-pdf,
        # "application/pdf; name=..."), so this is a substring match.
        return "pdf" in (self.mime_type or "").lower()


class EmailMessageInput(BaseModel):
    """Creation payload for an email message (produced by the inbound adapter)."""

    provider: str = "generic"
    external_id: Optional[str] = None
    from_address: str
    to_address: str
    subject: str
    body_text: Optional[str] = None
    received_at: str
    status: EmailProcessingStatus = EmailProcessingStatus.NEW
    attachments: list[EmailAttachment] = []


class EmailMessage(BaseModel):
    """Full email_messages record."""
    model_config = {"from_attributes": True}

    id: str
    provider: str = "generic"
    external_id: Optional[str] = None
    from_address: str
    to_address: str
    subject: str
    body_text: Optional[str] = None
    received_at: str
    processing_status: EmailProcessingStatus = EmailProcessingStatus.NEW
    has_pdf_attachments: bool = False
    pdf_attachment_count: int = 0
    attachments: list[EmailAttachment] = []
    duplicate_of_work_order_id: Optional[str] = None
    created_at: str
    updated_at: str

    def pdf_attachments(self) -> list[EmailAttachment]:
        """PDF attachments in their original order."""
        return [att for att in self.attachments if att.is_pdf()]


class EmailMessageList(BaseModel):
    """Response body for GET /api/email-messages."""
    email_messages: list[EmailMessage]
    has_more: bool = False
