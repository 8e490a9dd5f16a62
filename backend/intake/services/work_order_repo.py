"""
Work order persistence.

WorkOrderRepository is the single gateway to the work_orders table. Every
query is tenant-scoped: a None user_id is its own scope (anonymous / free
usage), matched with IS NULL rather than equality.

SupabaseWorkOrderRepository is the production implementation.
InMemoryWorkOrderRepository has the same interface and is used by the test
suite and for local development without a database.

(user_id, work_order_number) uniqueness is not enforced here; the duplicate
detector checks before saving.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import uuid4

from fastapi import HTTPException
from supabase import Client

from intake.db import get_supabase_admin
from intake.models.work_order import WorkOrder, WorkOrderInput
from intake.services.normalizer import sanitize_amount

logger = logging.getLogger(__name__)

TABLE = "work_orders"


class WorkOrderRepository(Protocol):
    def save_many(self, inputs: list[WorkOrderInput]) -> list[WorkOrder]: ...

    def list_for_user(self, user_id: Optional[str], limit: Optional[int] = None) -> list[WorkOrder]: ...

    def get_by_id_for_user(self, user_id: Optional[str], work_order_id: str) -> Optional[WorkOrder]: ...

    def find_by_work_order_numbers(self, user_id: Optional[str], numbers: list[str]) -> list[WorkOrder]: ...

    def clear_for_user(self, user_id: Optional[str]) -> None: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_row(item: WorkOrderInput) -> dict:
    """Insert payload for one work order; amount is re-normalised on write."""
    row = item.model_dump()
    row["amount"] = sanitize_amount(row.get("amount"))
    if not row.get("timestamp_extracted"):
        row["timestamp_extracted"] = _now_iso()
    return row


# ---------------------------------------------------------------------------
# Supabase implementation
# ---------------------------------------------------------------------------

class SupabaseWorkOrderRepository:
    def __init__(self, client: Client):
        self.client = client

    def _scoped(self, query, user_id: Optional[str]):
        if user_id is None:
            return query.is_("user_id", "null")
        return query.eq("user_id", user_id)

    def save_many(self, inputs: list[WorkOrderInput]) -> list[WorkOrder]:
        if not inputs:
            return []

        rows = [_to_row(item) for item in inputs]
        result = self.client.table(TABLE).insert(rows).execute()

        if not result.data:
            raise Exception("Failed to save work orders: no rows returned")

        return [WorkOrder(**row) for row in result.data]

    def list_for_user(self, user_id: Optional[str], limit: Optional[int] = None) -> list[WorkOrder]:
        query = self._scoped(self.client.table(TABLE).select("*"), user_id)
        query = query.order("created_at", desc=True)
        if limit:
            query = query.limit(limit)

        result = query.execute()
        return [WorkOrder(**row) for row in (result.data or [])]

    def get_by_id_for_user(self, user_id: Optional[str], work_order_id: str) -> Optional[WorkOrder]:
        query = self._scoped(
            self.client.table(TABLE).select("*").eq("id", work_order_id), user_id
        )
        result = query.limit(1).execute()

        if not result.data:
            return None
        return WorkOrder(**result.data[0])

    def find_by_work_order_numbers(self, user_id: Optional[str], numbers: list[str]) -> list[WorkOrder]:
        if not numbers:
            return []

        query = self._scoped(
            self.client.table(TABLE).select("*").in_("work_order_number", numbers), user_id
        )
        result = query.execute()
        return [WorkOrder(**row) for row in (result.data or [])]

    def clear_for_user(self, user_id: Optional[str]) -> None:
        self._scoped(self.client.table(TABLE).delete(), user_id).execute()


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryWorkOrderRepository:
    def __init__(self):
        self._store: list[WorkOrder] = []

    def save_many(self, inputs: list[WorkOrderInput]) -> list[WorkOrder]:
        now = _now_iso()
        saved = [
            WorkOrder(id=str(uuid4()), created_at=now, **_to_row(item))
            for item in inputs
        ]
        self._store.extend(saved)
        return saved

    def list_for_user(self, user_id: Optional[str], limit: Optional[int] = None) -> list[WorkOrder]:
        results = [wo for wo in self._store if wo.user_id == user_id]
        results.sort(key=lambda wo: wo.created_at, reverse=True)
        if limit:
            results = results[:limit]
        return results

    def get_by_id_for_user(self, user_id: Optional[str], work_order_id: str) -> Optional[WorkOrder]:
        for wo in self._store:
            if wo.id == work_order_id and wo.user_id == user_id:
                return wo
        return None

    def find_by_work_order_numbers(self, user_id: Optional[str], numbers: list[str]) -> list[WorkOrder]:
        if not numbers:
            return []
        wanted = set(numbers)
        return [
            wo for wo in self._store
            if wo.user_id == user_id and wo.work_order_number in wanted
        ]

    def clear_for_user(self, user_id: Optional[str]) -> None:
        self._store = [wo for wo in self._store if wo.user_id != user_id]


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

def get_work_order_repo() -> WorkOrderRepository:
    """Production repository; overridden with the in-memory one in tests."""
    client = get_supabase_admin()
    if client is None:
        raise HTTPException(
            status_code=500,
            detail="Server misconfiguration: SUPABASE_SERVICE_KEY is not set",
        )
    return SupabaseWorkOrderRepository(client)
