"""
Pydantic models for work orders.

WorkOrderInput is the pipeline's output before persistence; WorkOrder is the
stored record (id and created_at are assigned by the repository).
ParsedWorkOrder is the stateless shape returned by the manual upload flow,
which never writes to the database.
"""

from typing import Optional

from pydantic import BaseModel, field_validator

from intake.models.email_message import EmailMessage


class WorkOrderInput(BaseModel):
    """
    A structured work order extracted from an email or a manual upload.

    user_id is the tenant; None means anonymous / free usage and is its own
    isolated scope for listing and duplicate detection.
    """

    user_id: Optional[str] = None
    work_order_number: str
    customer_name: Optional[str] = None
    vendor_name: Optional[str] = None  # facility-management platform, not the contractor
    service_address: Optional[str] = None
    job_type: Optional[str] = None
    job_description: Optional[str] = None
    scheduled_date: Optional[str] = None  # ISO 8601
    amount: Optional[str] = None  # decimal string, two fraction digits
    currency: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[str] = None
    timestamp_extracted: Optional[str] = None
    calendar_event_link: Optional[str] = None
    work_order_pdf_link: Optional[str] = None

    @field_validator("work_order_number")
    @classmethod
    def require_work_order_number(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("work_order_number must be a non-empty string")
        return v


class WorkOrder(WorkOrderInput):
    """Full work_orders record from the database."""
    model_config = {"from_attributes": True}

    id: str
    created_at: str


class SaveWorkOrdersRequest(BaseModel):
    """Request body for POST /api/work-orders."""
    work_orders: list[WorkOrderInput]


class WorkOrderList(BaseModel):
    work_orders: list[WorkOrder]


class ProcessEmailResult(BaseModel):
    """
    Outcome of processing one email message.

    skipped_as_duplicate is True only when candidates existed and every one of
    them was already stored for the tenant. An email without PDFs yields
    created_work_orders=[] and skipped_as_duplicate=False.
    """

    email: EmailMessage
    created_work_orders: list[WorkOrder] = []
    skipped_as_duplicate: bool = False
    duplicate_work_order_numbers: list[str] = []


# ---------------------------------------------------------------------------
# Manual upload (stateless) flow
# ---------------------------------------------------------------------------

class ParsedWorkOrder(BaseModel):
    """Work order parsed from a manually uploaded PDF (never persisted)."""

    work_order_number: str
    scheduled_date: Optional[str] = None
    customer_name: Optional[str] = None
    service_address: Optional[str] = None
    job_type: Optional[str] = None
    job_description: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[str] = None
    vendor_name: Optional[str] = None
    timestamp_extracted: str


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class ManualProcessMeta(BaseModel):
    file_count: int
    processed_at: str
    source: str = "manual"
    ai_model: Optional[str] = None
    token_usage: Optional[TokenUsage] = None


class ManualProcessResponse(BaseModel):
    """Response body for POST /api/process-pdf."""
    work_orders: list[ParsedWorkOrder]
    csv: str
    meta: ManualProcessMeta
