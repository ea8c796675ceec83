"""
Timestamp normalisation.

Incoming data (snapshot imports, SQLite rows, query parameters) carries
timestamps in several shapes. `parse_timestamp` classifies the raw value into
one explicit case and converts it to an aware UTC datetime. Anything it does
not recognise raises UnrecognizedTimestampError instead of being guessed at.

Supported shapes:
  - datetime            naive values are taken to be UTC
  - date                midnight UTC
  - document timestamp  mapping with "_seconds"/"_nanoseconds" (or
                        "seconds"/"nanoseconds") as written by document
                        database exporters
  - epoch millis        int or float, milliseconds since the Unix epoch
  - ISO-8601 string     "2024-05-01", "2024-05-01T10:00:00Z", ...
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional


class TimestampKind(str, enum.Enum):
    DATETIME = "datetime"
    DATE = "date"
    DOCUMENT_TIMESTAMP = "document_timestamp"
    EPOCH_MILLIS = "epoch_millis"
    ISO_STRING = "iso_string"


class UnrecognizedTimestampError(ValueError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Unrecognized timestamp value: {value!r} ({type(value).__name__})")


@dataclass(frozen=True)
class ParsedTimestamp:
    kind: TimestampKind
    value: datetime


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _document_timestamp_parts(value: dict) -> Optional[tuple[int, int]]:
    for seconds_key, nanos_key in (("_seconds", "_nanoseconds"), ("seconds", "nanoseconds")):
        if seconds_key in value:
            return value[seconds_key], value.get(nanos_key, 0)
    return None


def parse_timestamp(raw: Any) -> ParsedTimestamp:
    # bool is an int subclass; True is not a timestamp
    if isinstance(raw, bool) or raw is None:
        raise UnrecognizedTimestampError(raw)

    # datetime before date: datetime is a date subclass
    if isinstance(raw, datetime):
        return ParsedTimestamp(TimestampKind.DATETIME, ensure_utc(raw))

    if isinstance(raw, date):
        return ParsedTimestamp(
            TimestampKind.DATE,
            datetime.combine(raw, time.min, tzinfo=timezone.utc),
        )

    if isinstance(raw, dict):
        parts = _document_timestamp_parts(raw)
        if parts is None:
            raise UnrecognizedTimestampError(raw)
        seconds, nanos = parts
        if not isinstance(seconds, (int, float)) or not isinstance(nanos, (int, float)):
            raise UnrecognizedTimestampError(raw)
        try:
            value = _EPOCH + timedelta(seconds=seconds, microseconds=nanos // 1000)
        except (OverflowError, ValueError) as exc:
            raise UnrecognizedTimestampError(raw) from exc
        return ParsedTimestamp(TimestampKind.DOCUMENT_TIMESTAMP, value)

    if isinstance(raw, (int, float)):
        try:
            value = _EPOCH + timedelta(milliseconds=raw)
        except (OverflowError, ValueError) as exc:
            raise UnrecognizedTimestampError(raw) from exc
        return ParsedTimestamp(TimestampKind.EPOCH_MILLIS, value)

    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as exc:
            raise UnrecognizedTimestampError(raw) from exc
        return ParsedTimestamp(TimestampKind.ISO_STRING, ensure_utc(value))

    raise UnrecognizedTimestampError(raw)


def to_datetime(raw: Any) -> datetime:
    return parse_timestamp(raw).value
