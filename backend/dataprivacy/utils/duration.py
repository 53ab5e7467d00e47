"""
ISO-8601 duration helpers for purpose retention periods.

Calendar units (years, months) are applied with relativedelta so that
"P1Y" from 29 Feb lands on 28 Feb rather than drifting by days.
"""

import re
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

_DURATION_RE = re.compile(
    r"^P(?!$)"
    r"(?:(?P<years>\d+)Y)?"
    r"(?:(?P<months>\d+)M)?"
    r"(?:(?P<weeks>\d+)W)?"
    r"(?:(?P<days>\d+)D)?"
    r"(?:T(?=\d)"
    r"(?:(?P<hours>\d+)H)?"
    r"(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+(?:[.,]\d+)?)S)?"
    r")?$"
)


def parse_retention_period(value: str) -> relativedelta:
    """Parse an ISO-8601 duration ("P1Y", "PT1H", "P1Y2M10DT2H30M") into a relativedelta"""
    if not isinstance(value, str):
        raise ValueError(f"Retention period must be a string, got {type(value).__name__}")

    match = _DURATION_RE.match(value.strip().upper())
    if not match:
        raise ValueError(f"Invalid ISO-8601 duration: {value!r}")

    parts = match.groupdict()
    seconds_raw = (parts.pop("seconds") or "0").replace(",", ".")
    whole_seconds, _, fraction = seconds_raw.partition(".")
    microseconds = int(round(float(f"0.{fraction}") * 1_000_000)) if fraction else 0

    return relativedelta(
        years=int(parts["years"] or 0),
        months=int(parts["months"] or 0),
        weeks=int(parts["weeks"] or 0),
        days=int(parts["days"] or 0),
        hours=int(parts["hours"] or 0),
        minutes=int(parts["minutes"] or 0),
        seconds=int(whole_seconds),
        microseconds=microseconds,
    )


def is_valid_retention_period(value: str) -> bool:
    try:
        parse_retention_period(value)
    except ValueError:
        return False
    return True


def retention_expiry(anchor: datetime, retention_period: str) -> datetime:
    """Moment at which data anchored at ``anchor`` leaves its retention period"""
    return anchor + parse_retention_period(retention_period)


def has_elapsed(anchor: Optional[datetime], retention_period: str, now: datetime) -> bool:
    """True once ``anchor + retention_period`` is at or before ``now``"""
    if anchor is None:
        return False
    return retention_expiry(anchor, retention_period) <= now
