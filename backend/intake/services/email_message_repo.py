"""
Email message persistence.

Stores the canonical EmailMessage records created by the inbound webhook.
has_pdf_attachments and pdf_attachment_count are derived from the
attachments on save; callers never set them.

Listing is newest-received first. Paging uses received_at as the cursor:
list_latest_after returns messages received strictly before the cursor.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import uuid4

from fastapi import HTTPException
from supabase import Client

from intake.db import get_supabase_admin
from intake.models.email_message import (
    EmailMessage,
    EmailMessageInput,
    EmailProcessingStatus,
)

logger = logging.getLogger(__name__)

TABLE = "email_messages"
DEFAULT_LIMIT = 50

# id is a uuid column; every stored row differs from the nil uuid.
NIL_UUID = "00000000-0000-0000-0000-000000000000"


class EmailMessageRepository(Protocol):
    def save(self, message: EmailMessageInput) -> EmailMessage: ...

    def list_latest(self, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]: ...

    def list_new(self, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]: ...

    def list_latest_after(self, cursor: str, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]: ...

    def get_by_id(self, email_id: str) -> Optional[EmailMessage]: ...

    def update_status(self, email_id: str, status: EmailProcessingStatus) -> Optional[EmailMessage]: ...

    def set_duplicate_of(self, email_id: str, work_order_id: str) -> Optional[EmailMessage]: ...

    def clear(self) -> None: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_row(message: EmailMessageInput) -> dict:
    """Insert payload with the derived PDF flags."""
    pdf_count = sum(1 for att in message.attachments if att.is_pdf())
    return {
        "provider": message.provider,
        "external_id": message.external_id,
        "from_address": message.from_address,
        "to_address": message.to_address,
        "subject": message.subject,
        "body_text": message.body_text,
        "received_at": message.received_at,
        "processing_status": message.status.value,
        "has_pdf_attachments": pdf_count > 0,
        "pdf_attachment_count": pdf_count,
        "attachments": [att.model_dump() for att in message.attachments],
    }


# ---------------------------------------------------------------------------
# Supabase implementation
# ---------------------------------------------------------------------------

class SupabaseEmailMessageRepository:
    def __init__(self, client: Client):
        self.client = client

    @staticmethod
    def _first(result) -> Optional[EmailMessage]:
        if not result.data:
            return None
        return EmailMessage(**result.data[0])

    def save(self, message: EmailMessageInput) -> EmailMessage:
        result = self.client.table(TABLE).insert(_to_row(message)).execute()
        saved = self._first(result)
        if saved is None:
            raise Exception("Failed to save email message: no row returned")
        return saved

    def list_latest(self, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]:
        result = (
            self.client.table(TABLE)
            .select("*")
            .order("received_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [EmailMessage(**row) for row in (result.data or [])]

    def list_new(self, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]:
        result = (
            self.client.table(TABLE)
            .select("*")
            .eq("processing_status", EmailProcessingStatus.NEW.value)
            .order("received_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [EmailMessage(**row) for row in (result.data or [])]

    def list_latest_after(self, cursor: str, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]:
        result = (
            self.client.table(TABLE)
            .select("*")
            .lt("received_at", cursor)
            .order("received_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [EmailMessage(**row) for row in (result.data or [])]

    def get_by_id(self, email_id: str) -> Optional[EmailMessage]:
        result = self.client.table(TABLE).select("*").eq("id", email_id).limit(1).execute()
        return self._first(result)

    def update_status(self, email_id: str, status: EmailProcessingStatus) -> Optional[EmailMessage]:
        result = (
            self.client.table(TABLE)
            .update({"processing_status": status.value, "updated_at": _now_iso()})
            .eq("id", email_id)
            .execute()
        )
        return self._first(result)

    def set_duplicate_of(self, email_id: str, work_order_id: str) -> Optional[EmailMessage]:
        result = (
            self.client.table(TABLE)
            .update({
                "duplicate_of_work_order_id": work_order_id,
                "processing_status": EmailProcessingStatus.SKIPPED_DUPLICATE.value,
                "updated_at": _now_iso(),
            })
            .eq("id", email_id)
            .execute()
        )
        return self._first(result)

    def clear(self) -> None:
        # PostgREST refuses an unfiltered DELETE.
        self.client.table(TABLE).delete().neq("id", NIL_UUID).execute()


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEmailMessageRepository:
    def __init__(self):
        self._store: dict[str, EmailMessage] = {}

    def _sorted(self, messages) -> list[EmailMessage]:
        return sorted(messages, key=lambda m: m.received_at, reverse=True)

    def save(self, message: EmailMessageInput) -> EmailMessage:
        now = _now_iso()
        saved = EmailMessage(id=str(uuid4()), created_at=now, updated_at=now, **_to_row(message))
        self._store[saved.id] = saved
        return saved

    def list_latest(self, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]:
        return self._sorted(self._store.values())[:limit]

    def list_new(self, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]:
        new = [m for m in self._store.values() if m.processing_status == EmailProcessingStatus.NEW]
        return self._sorted(new)[:limit]

    def list_latest_after(self, cursor: str, limit: int = DEFAULT_LIMIT) -> list[EmailMessage]:
        older = [m for m in self._store.values() if m.received_at < cursor]
        return self._sorted(older)[:limit]

    def get_by_id(self, email_id: str) -> Optional[EmailMessage]:
        return self._store.get(email_id)

    def _update(self, email_id: str, **changes) -> Optional[EmailMessage]:
        current = self._store.get(email_id)
        if current is None:
            return None
        updated = current.model_copy(update={**changes, "updated_at": _now_iso()})
        self._store[email_id] = updated
        return updated

    def update_status(self, email_id: str, status: EmailProcessingStatus) -> Optional[EmailMessage]:
        return self._update(email_id, processing_status=status)

    def set_duplicate_of(self, email_id: str, work_order_id: str) -> Optional[EmailMessage]:
        return self._update(
            email_id,
            duplicate_of_work_order_id=work_order_id,
            processing_status=EmailProcessingStatus.SKIPPED_DUPLICATE,
        )

    def clear(self) -> None:
        self._store.clear()


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

def get_email_message_repo() -> EmailMessageRepository:
    """Production repository; overridden with the in-memory one in tests."""
    client = get_supabase_admin()
    if client is None:
        raise HTTPException(
            status_code=500,
            detail="Server misconfiguration: SUPABASE_SERVICE_KEY is not set",
        )
    return SupabaseEmailMessageRepository(client)
