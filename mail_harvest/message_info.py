"""Line scans that pull sender/recipients/subject/date out of a raw message."""

from __future__ import annotations

import re
from datetime import datetime
from email.utils import getaddresses, parseaddr
from typing import Optional

from .models import ExtractedInfo
from .utils import format_timestamp, parse_mail_date, printable_text, strip_angle_brackets

HEADER_END = re.compile(r"\r?\n\r?\n")


def header_section(raw_message: str) -> str:
    """Top-level header block of a raw message (everything before the first blank line)."""
    match = HEADER_END.search(raw_message)
    return raw_message[: match.start()] if match else raw_message


def _values(header: str, name: str) -> list[str]:
    pattern = re.compile(rf"^{re.escape(name)}:[ \t]*(.*?)[ \t]*$", re.MULTILINE)
    return [value.strip() for value in pattern.findall(header.replace("\r\n", "\n"))]


def _first(header: str, name: str) -> Optional[str]:
    values = _values(header, name)
    return values[0] if values else None


def extract_sender(header: str) -> Optional[str]:
    for value in _values(header, "Return-Path"):
        address = strip_angle_brackets(value)
        if address:
            return address
    from_value = _first(header, "From")
    if from_value:
        return parseaddr(from_value)[1] or None
    return None


def extract_recipients(header: str) -> list[str]:
    recipients: list[str] = []
    raw_values = _values(header, "Delivered-To") + _values(header, "To")
    for _, address in getaddresses(raw_values):
        if address and address not in recipients:
            recipients.append(address)
    return recipients


def extract_date(header: str) -> Optional[str]:
    value = _first(header, "Date")
    if not value:
        return None
    parsed = parse_mail_date(value)
    return format_timestamp(parsed) if parsed else None


def _printable(value: Optional[str]) -> Optional[str]:
    return printable_text(value) if value is not None else None


def extract_message_info(raw_message: str, read_timestamp: datetime | None = None) -> ExtractedInfo:
    header = header_section(raw_message)
    return ExtractedInfo(
        sender=_printable(extract_sender(header)),
        recipients=[printable_text(address) for address in extract_recipients(header)],
        subject=_printable(_first(header, "Subject")),
        date=extract_date(header),
        read_date=format_timestamp(read_timestamp) if read_timestamp else None,
    )
