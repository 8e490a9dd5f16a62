"""
Work order export: CSV text and Excel workbook.

Both formats use the same column order. The last column is "Created At" for
stored work orders and "Timestamp Extracted" for the stateless manual-upload
flow, which has no stored creation time.

CSV rules: a value is quoted (inner quotes doubled) only when it contains a
double quote, a comma or a newline; None becomes an empty field; lines are
joined with "\\n" and there is no trailing newline.
"""

import io
import logging
from typing import Any, Optional, Sequence

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Column definitions
# ---------------------------------------------------------------------------

# (header, attribute) pairs shared by both variants
_BASE_COLUMNS = [
    ("Work Order Number", "work_order_number"),
    ("Scheduled Date", "scheduled_date"),
    ("Customer Name", "customer_name"),
    ("Service Address", "service_address"),
    ("Job Type", "job_type"),
    ("Job Description", "job_description"),
    ("Amount", "amount"),
    ("Currency", "currency"),
    ("Priority", "priority"),
    ("Notes", "notes"),
    ("Vendor Name", "vendor_name"),
]

STORED_COLUMNS = _BASE_COLUMNS + [("Created At", "created_at")]
PARSED_COLUMNS = _BASE_COLUMNS + [("Timestamp Extracted", "timestamp_extracted")]


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def escape_csv_value(value: Optional[Any]) -> str:
    if value is None:
        return ""
    text = str(value)
    if '"' in text or "," in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def _to_csv(records: Sequence[Any], columns: list[tuple[str, str]]) -> str:
    lines = [",".join(escape_csv_value(header) for header, _ in columns)]
    for record in records:
        lines.append(",".join(escape_csv_value(getattr(record, attr, None)) for _, attr in columns))
    return "\n".join(lines)


def work_orders_to_csv(work_orders: Sequence[Any]) -> str:
    """CSV for stored work orders (last column: Created At)."""
    return _to_csv(work_orders, STORED_COLUMNS)


def parsed_work_orders_to_csv(work_orders: Sequence[Any]) -> str:
    """CSV for manually parsed work orders (last column: Timestamp Extracted)."""
    return _to_csv(work_orders, PARSED_COLUMNS)


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

_HEADER_FONT = Font(bold=True, size=11)
_HEADER_FILL = PatternFill(
    start_color="D9E1F2",
    end_color="D9E1F2",
    fill_type="solid",
)

_COLUMN_WIDTHS: dict[str, int] = {
    "Work Order Number": 20,
    "Customer Name": 24,
    "Service Address": 32,
    "Job Description": 40,
    "Notes": 40,
    "Created At": 26,
    "Timestamp Extracted": 26,
}
_DEFAULT_COLUMN_WIDTH = 16


def work_orders_to_xlsx(work_orders: Sequence[Any], columns: Optional[list[tuple[str, str]]] = None) -> bytes:
    """
    Render work orders as a single-sheet .xlsx workbook.

    Row 1 holds bold, filled headers and is frozen; one row per work order
    follows. Values are written as text so amounts keep their two decimals.

    Returns:
        Bytes of the generated .xlsx file.
    """
    if columns is None:
        columns = STORED_COLUMNS

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Work Orders"

    ws.append([header for header, _ in columns])
    for col_idx in range(1, len(columns) + 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center")

    for record in work_orders:
        ws.append([getattr(record, attr, None) for _, attr in columns])

    for col_idx, (header, _) in enumerate(columns, start=1):
        width = _COLUMN_WIDTHS.get(header, _DEFAULT_COLUMN_WIDTH)
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    ws.freeze_panes = ws.cell(row=2, column=1)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.read()
