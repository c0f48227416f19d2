"""Date Normalization Service.

Reduces loosely formatted date strings to a canonical ``YYYY-MM-DD`` form so
that dates from different sources compare correctly as plain strings.
"""

import re
from datetime import date
from typing import Optional

# Sentinel meaning "no normalized value"
EMPTY_DATE = ""

# Four-digit year, one- or two-digit month and day
_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def normalize_date(raw: Optional[str]) -> str:
    """Normalize a date string to ``YYYY-MM-DD``.

    Only the year-month-day pattern is accepted. Anything else (other
    layouts, trailing time components, blank input, impossible calendar
    dates such as 2024-02-30) yields the empty sentinel. This function never
    raises.

    Parameters:
        raw: Raw date string as delivered by a source

    Returns:
        str: Canonical date, or ``""`` if the value cannot be normalized
    """
    if raw is None or not isinstance(raw, str):
        return EMPTY_DATE

    match = _DATE_PATTERN.match(raw.strip())
    if match is None:
        return EMPTY_DATE

    year, month, day = (int(part) for part in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError:
        return EMPTY_DATE

    return parsed.isoformat()
