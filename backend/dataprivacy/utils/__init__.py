from .clock import Clock, utcnow, as_naive_utc
from .duration import parse_retention_period, is_valid_retention_period, retention_expiry, has_elapsed

__all__ = [
    "Clock",
    "utcnow",
    "as_naive_utc",
    "parse_retention_period",
    "is_valid_retention_period",
    "retention_expiry",
    "has_elapsed",
]
