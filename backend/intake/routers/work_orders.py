"""
Work order API endpoints.

Every endpoint is scoped to the caller's tenant: the authenticated user, or
None for anonymous requests.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import ValidationError

from intake.auth import get_optional_user
from intake.models.work_order import SaveWorkOrdersRequest, WorkOrder, WorkOrderList
from intake.services.export import work_orders_to_csv, work_orders_to_xlsx
from intake.services.work_order_repo import WorkOrderRepository, get_work_order_repo

logger = logging.getLogger(__name__)

router = APIRouter()

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("", response_model=WorkOrderList)
def list_work_orders(
    limit: Optional[int] = Query(None, ge=1),
    user_id: Optional[str] = Depends(get_optional_user),
    repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    """List the tenant's work orders, newest first."""
    return WorkOrderList(work_orders=repo.list_for_user(user_id, limit=limit))


@router.post("", response_model=WorkOrderList)
def save_work_orders(
    payload: dict = Body(...),
    user_id: Optional[str] = Depends(get_optional_user),
    repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    """
    Save work orders for the tenant.

    Body: {"work_orders": [WorkOrderInput, ...]}. Any user_id in the payload
    is replaced with the caller's tenant. A malformed body (including a
    blank work_order_number) is rejected with 400 before anything is saved.
    """
    try:
        request = SaveWorkOrdersRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Rejected work order payload: {e.error_count()} validation error(s)")
        raise HTTPException(status_code=400, detail="Invalid payload")

    inputs = [wo.model_copy(update={"user_id": user_id}) for wo in request.work_orders]
    saved = repo.save_many(inputs)
    return WorkOrderList(work_orders=saved)


@router.delete("")
def clear_work_orders(
    user_id: Optional[str] = Depends(get_optional_user),
    repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    """Delete every work order of the tenant."""
    repo.clear_for_user(user_id)
    return {"success": True}


@router.get("/export")
def export_work_orders_csv(
    user_id: Optional[str] = Depends(get_optional_user),
    repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    """Download the tenant's work orders as CSV."""
    csv_text = work_orders_to_csv(repo.list_for_user(user_id))
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="work_orders.csv"'},
    )


@router.get("/export.xlsx")
def export_work_orders_xlsx(
    user_id: Optional[str] = Depends(get_optional_user),
    repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    """Download the tenant's work orders as an Excel workbook."""
    xlsx_bytes = work_orders_to_xlsx(repo.list_for_user(user_id))
    return Response(
        content=xlsx_bytes,
        media_type=_XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="work_orders.xlsx"'},
    )


@router.get("/{work_order_id}", response_model=WorkOrder)
def get_work_order(
    work_order_id: str,
    user_id: Optional[str] = Depends(get_optional_user),
    repo: WorkOrderRepository = Depends(get_work_order_repo),
):
    work_order = repo.get_by_id_for_user(user_id, work_order_id)
    if work_order is None:
        raise HTTPException(status_code=404, detail="Work order not found")
    return work_order
