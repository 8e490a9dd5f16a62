"""
Email processing orchestrator.

Turns one stored EmailMessage into WorkOrder records:

  1. Load the email (missing -> None).
  2. Try AI extraction; any exception is logged and treated as "no result".
  3. Fall back to rule-based extraction when AI gave None or [].
  4. Stamp the tenant on every candidate.
  5. Drop candidates the tenant already has, save the rest.
  6. Write the email's status once the outcome is known.

Nothing here is shared between calls. Status is written last, so an
interrupted run leaves the email as "new".
"""

import logging
from typing import Optional

from intake.models.email_message import EmailMessage, EmailProcessingStatus
from intake.models.work_order import ProcessEmailResult, WorkOrderInput
from intake.plans import ExtractionCapabilities
from intake.services.ai_extractor import ai_parse_work_orders_from_email
from intake.services.duplicates import derive_processing_status, resolve_duplicates
from intake.services.email_message_repo import EmailMessageRepository
from intake.services.rule_based import build_work_order_inputs_from_email
from intake.services.work_order_repo import WorkOrderRepository

logger = logging.getLogger(__name__)


def _extract_candidates(
    email: EmailMessage,
    capabilities: ExtractionCapabilities,
) -> list[WorkOrderInput]:
    try:
        ai_result = ai_parse_work_orders_from_email(email, capabilities)
    except Exception:
        logger.error(
            f"AI parser raised for email {email.id} "
            f"(subject={email.subject!r}, attachments={len(email.attachments)}); "
            "falling back to rule-based parser",
            exc_info=True,
        )
        ai_result = None

    if ai_result:
        logger.info(f"AI parser used for email {email.id}, produced {len(ai_result)} work order(s)")
        return ai_result

    logger.info(f"AI parser unavailable or empty for email {email.id}, using rule-based parser")
    return build_work_order_inputs_from_email(email)


def process_single_email_message(
    email_id: str,
    user_id: Optional[str],
    *,
    email_repo: EmailMessageRepository,
    work_order_repo: WorkOrderRepository,
    capabilities: ExtractionCapabilities,
) -> Optional[ProcessEmailResult]:
    """
    Process one email end to end.

    Returns:
        ProcessEmailResult, or None when no email has that id.
    """
    email = email_repo.get_by_id(email_id)
    if email is None:
        return None

    candidates = [
        c.model_copy(update={"user_id": user_id})
        for c in _extract_candidates(email, capabilities)
    ]

    if not candidates:
        updated = email_repo.update_status(email.id, EmailProcessingStatus.PROCESSED)
        return ProcessEmailResult(email=updated or email)

    resolution = resolve_duplicates(candidates, user_id, work_order_repo)

    created = []
    if resolution.to_insert:
        created = work_order_repo.save_many(resolution.to_insert)

    status = derive_processing_status(len(candidates), len(created))
    updated = email_repo.update_status(email.id, status)

    logger.info(
        f"Processed email {email.id}: {len(created)} created, "
        f"{len(resolution.duplicate_numbers)} duplicate(s), status={status.value}"
    )

    return ProcessEmailResult(
        email=updated or email,
        created_work_orders=created,
        skipped_as_duplicate=status == EmailProcessingStatus.SKIPPED_DUPLICATE,
        duplicate_work_order_numbers=resolution.duplicate_numbers,
    )
