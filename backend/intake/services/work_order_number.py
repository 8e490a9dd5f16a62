"""
Work order number locator.

Finds a work order number in free text: filenames, subjects, email bodies.

Patterns, first match wins:
  WO# 1910446 / WO#1910446 / WO 1910446   -> the digits (5-10 of them)
  a standalone run of 6-10 digits         -> the run

Shorter bare runs are usually page numbers or dates; longer ones are phone
numbers or internal ids, so they are ignored.
"""

import re
from typing import Optional

_WO_PATTERN = re.compile(r"WO#?\s*(\d{5,10})", re.IGNORECASE)
_DIGIT_RUN_PATTERN = re.compile(r"\b(\d{6,10})\b")


def extract_work_order_number_from_text(text: Optional[str]) -> Optional[str]:
    """
    Return the work order number found in text, or None.

    Examples:
        "WO# 1910446 - Leak repair"   -> "1910446"
        "1898060.pdf"                 -> "1898060"
        "Call 555-1234 re: page 12"   -> None
    """
    if not text:
        return None

    m = _WO_PATTERN.search(text)
    if m:
        return m.group(1)

    m = _DIGIT_RUN_PATTERN.search(text)
    if m:
        return m.group(1)

    return None
