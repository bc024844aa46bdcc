"""Sender/receiver allow-list check applied to raw header blocks."""

from __future__ import annotations

import logging
from email.utils import getaddresses, parseaddr

from .config import AllowList
from .utils import is_valid_email, strip_angle_brackets

logger = logging.getLogger(__name__)

SENDER_PREFIXES = ("From:", "Return-Path:")
RECEIVER_PREFIX = "To:"


def extract_sender(line: str) -> str:
    """Return the address of a ``From:``/``Return-Path:`` line, or ``""``."""
    if not line.startswith(SENDER_PREFIXES):
        return ""
    value = line.split(":", 1)[1].strip()
    if line.startswith("Return-Path:"):
        candidate = strip_angle_brackets(value)
    else:
        candidate = parseaddr(value)[1]
    return candidate if is_valid_email(candidate) else ""


def extract_receivers(line: str) -> list[str]:
    """Return every valid address listed on a ``To:`` line."""
    if not line.startswith(RECEIVER_PREFIX):
        return []
    value = line[len(RECEIVER_PREFIX):]
    return [address for _, address in getaddresses([value]) if is_valid_email(address)]


class AllowListFilter:
    """Accept a message only when both its sender and a receiver are allowed."""

    def __init__(self, allow_list: AllowList) -> None:
        self.senders = {sender.lower() for sender in allow_list.senders}
        self.receivers = {receiver.lower() for receiver in allow_list.receivers}

    def matches(self, raw_header: str) -> bool:
        sender = ""
        receivers: list[str] = []

        for line in raw_header.splitlines():
            line = line.strip()
            if not sender:
                sender = extract_sender(line)
            receivers.extend(extract_receivers(line))
            if sender and receivers:
                break

        if not sender or not receivers:
            logger.debug("Header lacks a valid sender or receiver; not allowed")
            return False

        if sender.lower() not in self.senders:
            logger.debug("Sender %s is not on the allow-list", sender)
            return False

        if not {receiver.lower() for receiver in receivers} & self.receivers:
            logger.debug("None of the receivers %s are on the allow-list", receivers)
            return False

        return True
