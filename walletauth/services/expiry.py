"""
Access token TTL parsing.

Turns a human-supplied duration (``"1h"``, ``"30m"``, ``"7d"``, ``"3600"``)
into whole seconds. Bad input never raises: it falls back to the default and
logs a warning, so a typo in the environment cannot take the login flow down.

Policy:
- unparseable, wrong type or empty -> default (3600s)
- zero or negative -> default
- more than 30 days -> default (too large is not clamped)
- less than 60s -> clamped up to 60s
"""

import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SECONDS = 3600
MIN_EXPIRY_SECONDS = 60
MAX_EXPIRY_SECONDS = 86400 * 30

_UNIT_SECONDS = {
    "s": 1, "sec": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
}

_BARE_INTEGER = re.compile(r"^[+-]?\d{1,12}$")
_WITH_UNIT = re.compile(
    r"^(\d{1,12})\s*(s|sec|second|seconds|m|min|minute|minutes|h|hr|hour|hours|d|day|days)$"
)


def _bounded(total_seconds: int, provided) -> int:
    if total_seconds <= 0:
        logger.warning(f"Invalid JWT_EXPIRY value {provided!r}, using default of {DEFAULT_EXPIRY_SECONDS}s")
        return DEFAULT_EXPIRY_SECONDS
    if total_seconds > MAX_EXPIRY_SECONDS:
        logger.warning(f"JWT_EXPIRY {provided!r} exceeds 30 days, using default of {DEFAULT_EXPIRY_SECONDS}s")
        return DEFAULT_EXPIRY_SECONDS
    if total_seconds < MIN_EXPIRY_SECONDS:
        logger.warning(f"JWT_EXPIRY {provided!r} too short, setting to minimum of {MIN_EXPIRY_SECONDS}s")
        return MIN_EXPIRY_SECONDS
    return total_seconds


def parse_expiry(value) -> int:
    """Parse a TTL expression into seconds. See module docstring for the policy."""
    # bool is an int subclass but never a meaningful duration
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        logger.warning(
            f"Invalid JWT_EXPIRY type {type(value).__name__}, expected string or int; "
            f"using default of {DEFAULT_EXPIRY_SECONDS}s"
        )
        return DEFAULT_EXPIRY_SECONDS

    if isinstance(value, int):
        return _bounded(value, value)

    normalized = value.strip().lower()
    if not normalized:
        logger.warning(f"Empty JWT_EXPIRY value, using default of {DEFAULT_EXPIRY_SECONDS}s")
        return DEFAULT_EXPIRY_SECONDS

    if _BARE_INTEGER.match(normalized):
        return _bounded(int(normalized), value)

    match = _WITH_UNIT.match(normalized)
    if match:
        count, unit = match.groups()
        return _bounded(int(count) * _UNIT_SECONDS[unit], value)

    logger.warning(
        f"Invalid JWT_EXPIRY format {value!r} (expected e.g. 1h, 30m, 7d, 3600), "
        f"using default of {DEFAULT_EXPIRY_SECONDS}s"
    )
    return DEFAULT_EXPIRY_SECONDS
