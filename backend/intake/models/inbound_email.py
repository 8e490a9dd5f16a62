"""
Provider-agnostic inbound email model.

These models represent a normalized inbound webhook payload after
provider-specific fields have been stripped away. Attachments either carry
their raw bytes (Postmark, Resend: base64 in the payload) or an existing
storage location (the "test" provider); the webhook router uploads raw bytes
before the message is persisted as an EmailMessage.
"""

from typing import Optional
from pydantic import BaseModel


class InboundAttachment(BaseModel):
    """A single file attachment from a webhook payload."""

    id: Optional[str] = None
    filename: str
    content_type: str
    content: Optional[bytes] = None     # raw bytes: adapter is responsible for base64-decoding
    storage_location: Optional[str] = None
    size_bytes: Optional[int] = None


class InboundEmail(BaseModel):
    """
    Normalized inbound email, provider-agnostic.

    All provider-specific field names (Postmark's PascalCase, Resend's
    snake_case, the test provider's camelCase) are mapped to these canonical
    names by the adapter layer before the router ever sees the data.
    """

    provider: str
    external_id: Optional[str] = None
    from_address: str
    to_address: str
    subject: str = "(no subject)"
    body_text: Optional[str] = None
    received_at: str
    attachments: list[InboundAttachment] = []
