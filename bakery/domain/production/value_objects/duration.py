"""
Duration parsing for workflow step estimates.

Bakery process files express step lengths as short strings such as ``15m``,
``30min``, ``2h`` or ``1 hour``. Everything is normalised to whole minutes.
"""

import re

DEFAULT_STEP_MINUTES = 30

_DURATION_PATTERN = re.compile(
    r"^\s*(\d+(?:\.\d+)?)\s*(m|min|mins|minute|minutes|h|hr|hrs|hour|hours)?\s*$",
    re.IGNORECASE,
)


def parse_duration_minutes(value: str | int | float | None) -> int:
    """
    Convert a duration expression into minutes.

    Numbers are taken as minutes. Strings without a recognised unit fall back to
    minutes, and unparseable or empty values fall back to
    ``DEFAULT_STEP_MINUTES``.

    Examples:
        >>> parse_duration_minutes("15m")
        15
        >>> parse_duration_minutes("2h")
        120
        >>> parse_duration_minutes(None)
        30
    """
    if value is None:
        return DEFAULT_STEP_MINUTES
    if isinstance(value, bool):
        raise TypeError("Duration cannot be a boolean")
    if isinstance(value, (int, float)):
        return max(0, int(round(value)))

    match = _DURATION_PATTERN.match(value)
    if not match:
        return DEFAULT_STEP_MINUTES

    amount = float(match.group(1))
    unit = (match.group(2) or "min").lower()
    if unit.startswith("h"):
        amount *= 60
    return int(round(amount))
