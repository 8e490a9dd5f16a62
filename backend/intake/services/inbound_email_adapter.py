"""
Inbound email adapter service.

Normalizes provider-specific inbound webhook payloads into a single
provider-agnostic InboundEmail model.

Supported providers:
  - test      local testing; attachments already point at a file path or URL
  - postmark  PascalCase JSON, base64 attachment content
  - resend    snake_case JSON, base64 attachment content

Adding a new provider:
  1. Write a normalize_<provider>(payload: dict) -> InboundEmail function.
  2. Register it in _NORMALIZERS.

Test provider payload
---------------------
  {
    "id": "msg-123",                          optional, external id
    "from": "sender@example.com",
    "to": "workorders@example.com",
    "subject": "WO #1910446",
    "text": "Please schedule ...",            optional body
    "receivedAt": "2025-12-06T10:00:00Z",     optional, defaults to now
    "attachments": [
      {"filename": "1910446.pdf", "mimeType": "application/pdf",
       "sizeBytes": 12345, "storageLocation": "/path/or/https-url"}
    ]
  }
"""

import base64
import binascii
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

from intake.models.inbound_email import InboundAttachment, InboundEmail

logger = logging.getLogger(__name__)

_UNKNOWN_ADDRESS = "unknown@example.com"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_base64(raw: Optional[str], filename: str) -> bytes:
    try:
        return base64.b64decode(raw or "")
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Could not base64-decode attachment {filename!r}: {e}")
        return b""


def _rfc2822_to_iso(value: Optional[str]) -> str:
    """Postmark sends RFC 2822 dates; fall back to now when absent or malformed."""
    if not value:
        return _now_iso()
    try:
        return parsedate_to_datetime(value).isoformat()
    except (TypeError, ValueError):
        logger.warning(f"Unparseable email date {value!r}; using current time")
        return _now_iso()


# ---------------------------------------------------------------------------
# Test normalizer
# ---------------------------------------------------------------------------

def normalize_test(payload: dict) -> InboundEmail:
    """Convert a test-provider payload (camelCase, no file content) to InboundEmail."""
    attachments: list[InboundAttachment] = []
    for att in payload.get("attachments") or []:
        size = att.get("sizeBytes")
        attachments.append(
            InboundAttachment(
                id=att.get("id"),
                filename=str(att.get("filename") or "attachment"),
                content_type=str(att.get("mimeType") or "application/octet-stream"),
                size_bytes=size if isinstance(size, int) else None,
                storage_location=att.get("storageLocation"),
            )
        )

    return InboundEmail(
        provider="test",
        external_id=payload.get("id"),
        from_address=str(payload.get("from") or _UNKNOWN_ADDRESS),
        to_address=str(payload.get("to") or _UNKNOWN_ADDRESS),
        subject=str(payload.get("subject") or "(no subject)"),
        body_text=payload.get("text"),
        received_at=str(payload.get("receivedAt") or _now_iso()),
        attachments=attachments,
    )


# ---------------------------------------------------------------------------
# Postmark normalizer
# ---------------------------------------------------------------------------

def normalize_postmark(payload: dict) -> InboundEmail:
    """
    Convert a Postmark inbound webhook payload to InboundEmail.

    Postmark uses PascalCase keys:
      MessageID, From, To, Subject, TextBody, Date,
      Attachments[].{Name, Content, ContentType, ContentLength}

    Content is base64-encoded in Postmark payloads.
    """
    attachments: list[InboundAttachment] = []
    for att in payload.get("Attachments") or []:
        filename = att.get("Name") or "attachment"
        content = _decode_base64(att.get("Content"), filename)
        attachments.append(
            InboundAttachment(
                filename=filename,
                content=content,
                content_type=att.get("ContentType") or "application/octet-stream",
                size_bytes=att.get("ContentLength") or len(content),
            )
        )

    return InboundEmail(
        provider="postmark",
        external_id=payload.get("MessageID"),
        from_address=payload.get("From") or _UNKNOWN_ADDRESS,
        to_address=payload.get("To") or _UNKNOWN_ADDRESS,
        subject=payload.get("Subject") or "(no subject)",
        body_text=payload.get("TextBody"),
        received_at=_rfc2822_to_iso(payload.get("Date")),
        attachments=attachments,
    )


# ---------------------------------------------------------------------------
# Resend normalizer
# ---------------------------------------------------------------------------

def normalize_resend(payload: dict) -> InboundEmail:
    """
    Convert a Resend inbound webhook payload to InboundEmail.

    Resend uses snake_case keys:
      email_id, from, to, subject, text, created_at,
      attachments[].{filename, content, content_type}

    content is base64-encoded in Resend payloads. Resend sometimes wraps the
    email in a "data" envelope; both shapes are accepted.
    """
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload

    attachments: list[InboundAttachment] = []
    for att in data.get("attachments") or []:
        filename = att.get("filename") or "attachment"
        content = _decode_base64(att.get("content"), filename)
        attachments.append(
            InboundAttachment(
                filename=filename,
                content=content,
                content_type=att.get("content_type") or "application/octet-stream",
                size_bytes=len(content),
            )
        )

    to = data.get("to")
    if isinstance(to, list):
        to = ", ".join(to)

    return InboundEmail(
        provider="resend",
        external_id=data.get("email_id") or data.get("id"),
        from_address=data.get("from") or _UNKNOWN_ADDRESS,
        to_address=to or _UNKNOWN_ADDRESS,
        subject=data.get("subject") or "(no subject)",
        body_text=data.get("text"),
        received_at=data.get("created_at") or _now_iso(),
        attachments=attachments,
    )


# ---------------------------------------------------------------------------
# Registry and dispatcher
# ---------------------------------------------------------------------------

_NORMALIZERS: dict[str, Callable[[dict], InboundEmail]] = {
    "test": normalize_test,
    "postmark": normalize_postmark,
    "resend": normalize_resend,
}


def normalize_webhook(payload: dict, provider: str = "test") -> InboundEmail:
    """
    Route to the correct normalizer for provider (case-insensitive).

    Raises ValueError for unknown provider names.
    """
    resolved = (provider or "test").lower().strip()

    normalizer = _NORMALIZERS.get(resolved)
    if normalizer is None:
        raise ValueError(f"Unknown provider: {resolved}")

    return normalizer(payload)
