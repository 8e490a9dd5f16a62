"""
Rule-based work order extraction.

Fallback used when AI extraction is unavailable, fails, or returns nothing.
Produces exactly one WorkOrderInput per PDF attachment using only the
attachment filename and the email subject; it never reads PDF content and
never raises.
"""

from intake.models.email_message import EmailMessage
from intake.models.work_order import WorkOrderInput
from intake.services.work_order_number import extract_work_order_number_from_text

UNKNOWN_FACILITY = "Unknown facility"
GENERAL_SERVICE = "General service"


def _placeholder_number(email_id: str, index: int) -> str:
    return f"UNKNOWN-{email_id[:8]}-{index}"


def build_work_order_inputs_from_email(email: EmailMessage) -> list[WorkOrderInput]:
    """
    Build one work order per PDF attachment, in attachment order.

    The number comes from the filename, then the subject, then a placeholder
    unique within the email (UNKNOWN-<first 8 chars of email id>-<index>).
    Returns [] when the email has no PDF attachments.
    """
    work_orders: list[WorkOrderInput] = []

    for index, attachment in enumerate(email.pdf_attachments()):
        number = (
            extract_work_order_number_from_text(attachment.filename)
            or extract_work_order_number_from_text(email.subject)
            or _placeholder_number(email.id, index)
        )

        work_orders.append(
            WorkOrderInput(
                work_order_number=number,
                service_address=UNKNOWN_FACILITY,
                job_type=GENERAL_SERVICE,
                scheduled_date=email.received_at,
                timestamp_extracted=email.received_at,
                work_order_pdf_link=attachment.storage_location,
            )
        )

    return work_orders
