"""
Duplicate detection and persistence gate.

A candidate is a duplicate when the same tenant already has a stored work
order with exactly the same work_order_number (case-sensitive, no trimming
or other normalisation). A None tenant is its own scope.

Concurrent processing of the same email can race past this check; the
store has no unique constraint on (user_id, work_order_number).
"""

from dataclasses import dataclass, field
from typing import Optional

from intake.models.email_message import EmailProcessingStatus
from intake.models.work_order import WorkOrderInput
from intake.services.work_order_repo import WorkOrderRepository


@dataclass
class DuplicateResolution:
    """to_insert keeps candidate order; duplicate_numbers lists each skipped candidate's number."""
    to_insert: list[WorkOrderInput] = field(default_factory=list)
    duplicate_numbers: list[str] = field(default_factory=list)


def resolve_duplicates(
    candidates: list[WorkOrderInput],
    user_id: Optional[str],
    repo: WorkOrderRepository,
) -> DuplicateResolution:
    """Partition candidates into new records and numbers the tenant already has."""
    if not candidates:
        return DuplicateResolution()

    numbers = [c.work_order_number for c in candidates]
    existing = repo.find_by_work_order_numbers(user_id, numbers)
    existing_numbers = {wo.work_order_number for wo in existing}

    resolution = DuplicateResolution()
    for candidate in candidates:
        if candidate.work_order_number in existing_numbers:
            resolution.duplicate_numbers.append(candidate.work_order_number)
        else:
            resolution.to_insert.append(candidate)
    return resolution


def derive_processing_status(candidate_count: int, inserted_count: int) -> EmailProcessingStatus:
    """
    skipped_duplicate when there were candidates and none was inserted;
    processed otherwise (including the no-candidates case).
    """
    if candidate_count > 0 and inserted_count == 0:
        return EmailProcessingStatus.SKIPPED_DUPLICATE
    return EmailProcessingStatus.PROCESSED
