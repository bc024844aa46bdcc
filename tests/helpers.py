from __future__ import annotations

import base64
import re

CRLF = "\r\n"
SENDER = "reports@vendor.net"
RECEIVER = "inbox@acme.com"
BOUNDARY = "=_part_0042"
HEADER_END = re.compile(r"\r?\n\r?\n")


def build_header(
    *,
    sender: str = SENDER,
    to: str = RECEIVER,
    subject: str = "Weekly report",
    message_id: str = "<report-001@vendor.net>",
    date: str = "Mon, 02 Oct 2023 10:15:00 +0200",
) -> str:
    lines = [
        f"Return-Path: <{sender}>",
        f"Delivered-To: {to}",
        "Received: from mx.vendor.net by mx.acme.com; Mon, 02 Oct 2023 10:15:02 +0200",
        f"From: Vendor Reports <{sender}>",
        f"To: {to}",
        f"Subject: {subject}",
        f"Date: {date}",
        f"Message-ID: {message_id}",
        "MIME-Version: 1.0",
        f'Content-Type: multipart/mixed; boundary="{BOUNDARY}"',
    ]
    return CRLF.join(lines) + CRLF


def attachment_part(filename: str, payload: bytes) -> str:
    encoded = base64.encodebytes(payload).decode("ascii").strip()
    return CRLF.join(
        [
            f"--{BOUNDARY}",
            f'Content-Type: application/octet-stream; name="{filename}"',
            f'Content-Disposition: attachment; filename="{filename}"',
            "Content-Transfer-Encoding: base64",
            "",
            encoded,
        ]
    )


def build_message(header: str | None = None, attachments: list[tuple[str, bytes]] | None = None) -> str:
    """Raw multipart message with a text part and the given attachments."""
    parts = [
        (header or build_header()).rstrip(CRLF),
        "",
        f"--{BOUNDARY}",
        "Content-Type: text/plain; charset=utf-8",
        "",
        "Please find this week's figures attached.",
    ]
    for filename, payload in attachments or []:
        parts.append(attachment_part(filename, payload))
    parts.append(f"--{BOUNDARY}--")
    return CRLF.join(parts) + CRLF


class FakeTransport:
    """In-memory mailbox keyed by 1-based sequence number."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = list(messages)
        self.header_fetches: list[int] = []
        self.body_fetches: list[int] = []
        self.close_calls = 0

    def list_messages(self) -> list[tuple[int, int]]:
        return [(seq, len(raw)) for seq, raw in enumerate(self.messages, start=1)]

    def fetch_header(self, sequence_number: int) -> str:
        self.header_fetches.append(sequence_number)
        raw = self.messages[sequence_number - 1]
        match = HEADER_END.search(raw)
        return (raw[: match.start()] if match else raw) + CRLF

    def fetch_body(self, sequence_number: int) -> str:
        self.body_fetches.append(sequence_number)
        return self.messages[sequence_number - 1]

    def close(self) -> None:
        self.close_calls += 1

    @property
    def closed(self) -> bool:
        return self.close_calls > 0
