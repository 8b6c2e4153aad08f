"""
credence/core/time.py

THE ONLY TIMESTAMP MODULE IN CREDENCE.

Wire Format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

Published records, registry entries and deadlines all pass through here.
"""

import re
from datetime import datetime, timezone


_WIRE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def utc_now() -> datetime:
    """Timezone-aware current UTC time. Default clock for the lifecycle."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """
    Render a datetime in wire format.
    Naive datetimes are taken to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    ms = moment.microsecond // 1000
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"


def wire_timestamp() -> str:
    """Return current UTC time in wire format."""
    return format_timestamp(utc_now())


def parse_timestamp(value: str) -> datetime:
    """
    Parse a wire-format timestamp back to an aware datetime.
    Raises ValueError on anything that is not exactly wire format.
    """
    if not isinstance(value, str) or not _WIRE_RE.match(value):
        raise ValueError(
            f"timestamp {value!r} does not match wire format "
            f"YYYY-MM-DDTHH:MM:SS.mmmZ"
        )
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(
        tzinfo=timezone.utc
    )


def is_wire_timestamp(value) -> bool:
    return isinstance(value, str) and bool(_WIRE_RE.match(value))
