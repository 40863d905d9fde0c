"""
Output hardening helpers.
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# Leading characters a spreadsheet would treat as the start of a formula.
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r", "\n")


def sanitize_csv_field(value: Any) -> str:
    """
    Render a value for a CSV cell without letting it act as a formula.

    Example:
        >>> sanitize_csv_field("=SUM(A1:A3)")
        "'=SUM(A1:A3)"
        >>> sanitize_csv_field(12)
        '12'
    """
    text = "" if value is None else str(value)
    if text.startswith(FORMULA_PREFIXES):
        text = "'" + text
        logger.debug("Neutralised formula-like CSV value")
    return re.sub(r"[\r\n]+", " ", text)
