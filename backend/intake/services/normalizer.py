"""
Value normalization for extracted work order fields.

The model (and upstream senders) produce free-form strings: "$1,234.56 NTE",
"N/A", "   ". These helpers turn them into the canonical shapes stored on a
WorkOrderInput so every write path agrees on them.
"""

import re
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

logger = logging.getLogger(__name__)

_NON_AMOUNT_CHARS_RE = re.compile(r"[^0-9.]")
# Leading number of the cleaned string: "1234.56", "1234.", ".5".
# Anything after a second '.' is ignored ("1.2.3" -> "1.2").
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")

_CENTS = Decimal("0.01")


def sanitize_amount(value: Any) -> Optional[str]:
    """
    Normalise a monetary string to a decimal string with two fraction digits.

    Every character other than digits and '.' is stripped, then the leading
    number is parsed.

    Examples:
        "$1,234.56 NTE" -> "1234.56"
        "500"           -> "500.00"
        "12.345"        -> "12.35"
        ""              -> None
        "N/A"           -> None
        None            -> None
    """
    if value is None:
        return None

    cleaned = _NON_AMOUNT_CHARS_RE.sub("", str(value))
    if not cleaned or cleaned == ".":
        return None

    match = _LEADING_NUMBER_RE.match(cleaned)
    if not match:
        logger.debug("sanitize_amount: no numeric content in %r", value)
        return None

    try:
        amount = Decimal(match.group(0))
    except InvalidOperation:
        logger.debug("sanitize_amount: could not convert %r", match.group(0))
        return None

    return str(amount.quantize(_CENTS, rounding=ROUND_HALF_UP))


def clean_text(value: Any) -> Optional[str]:
    """
    Trim a model-supplied value; empty strings (and non-strings that render
    empty) become None.
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None
