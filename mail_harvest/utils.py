"""Utility helpers shared across modules."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from hashlib import sha256

import email_validator
from email_validator import EmailNotValidError, validate_email

TIMESTAMP_FORMAT = "%d.%m.%Y %H:%M:%S"

# Mail bytes that are not UTF-8 survive a decode/encode round trip as lone surrogates.
RAW_TEXT_ERRORS = "surrogateescape"

# Reserved names such as corp.local or localhost are routine on internal mail servers.
for _reserved in ("local", "localhost", "test"):
    if _reserved in email_validator.SPECIAL_USE_DOMAIN_NAMES:
        email_validator.SPECIAL_USE_DOMAIN_NAMES.remove(_reserved)


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_timestamp(dt: datetime) -> str:
    """Render a timestamp the way the ledger stores it."""
    return ensure_utc(dt).strftime(TIMESTAMP_FORMAT)


def parse_mail_date(value: str) -> datetime | None:
    """Parse an RFC 2822 ``Date`` value, returning None when it is unreadable."""
    try:
        return ensure_utc(parsedate_to_datetime(value.strip()))
    except (TypeError, ValueError, IndexError):
        return None


def sha256_hex(payload: bytes) -> str:
    """Convenience wrapper for hex digests."""
    return sha256(payload).hexdigest()


def decode_raw(line: bytes) -> str:
    return line.decode("utf-8", errors=RAW_TEXT_ERRORS)


def encode_raw(text: str) -> bytes:
    """Inverse of :func:`decode_raw`; gives back the bytes the server sent."""
    return text.encode("utf-8", errors=RAW_TEXT_ERRORS)


def printable_text(text: str) -> str:
    """Swap undecodable bytes for U+FFFD so the value can be stored as JSON."""
    return encode_raw(text).decode("utf-8", errors="replace")


def is_valid_email(value: str) -> bool:
    """True when ``value`` is exactly one syntactically valid address."""
    if not value or value != value.strip() or printable_text(value) != value:
        return False
    try:
        validate_email(value, check_deliverability=False, globally_deliverable=False)
    except EmailNotValidError:
        return False
    return True


def strip_angle_brackets(value: str) -> str:
    """Drop a single enclosing ``<...>`` pair, as used by ``Return-Path``."""
    stripped = value.strip()
    if stripped.startswith("<") and stripped.endswith(">"):
        return stripped[1:-1].strip()
    return stripped
