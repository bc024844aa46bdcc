"""POP3 mailbox session used as the pipeline's transport."""

from __future__ import annotations

import logging
import poplib
import re

from .config import Settings
from .utils import decode_raw

logger = logging.getLogger(__name__)

CRLF = "\r\n"
LIST_LINE = re.compile(r"^(\d+) (\d+)$")
STATUS_LINES = {"+OK", "-ERR unimplemented"}


class TransportError(RuntimeError):
    """Connecting to or authenticating with the mailbox failed."""


class Pop3Transport:
    """Thin wrapper around ``poplib.POP3_SSL`` exposing list/header/body fetches."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._conn: poplib.POP3_SSL | None = None

    def __enter__(self) -> "Pop3Transport":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def connect(self) -> None:
        """Open the TLS session and log in."""
        host, port = self.settings.pop3_host, self.settings.pop3_port
        try:
            conn = poplib.POP3_SSL(host, port, timeout=self.settings.pop3_timeout)
        except OSError as exc:
            raise TransportError(f"Unable to connect to POP3 server {host}:{port}: {exc}") from exc
        try:
            conn.user(self.settings.pop3_username)
            conn.pass_(self.settings.pop3_password)
        except (poplib.error_proto, OSError) as exc:
            conn.close()
            raise TransportError(f"POP3 login failed for {self.settings.pop3_username}: {exc}") from exc
        self._conn = conn
        logger.info("Connected to POP3 server %s:%s", host, port)

    def list_messages(self) -> list[tuple[int, int]]:
        """Return ``(sequence_number, size_bytes)`` for every message in the mailbox."""
        _, lines, _ = self._session().list()
        listing: list[tuple[int, int]] = []
        for line in self._decode_lines(lines):
            match = LIST_LINE.match(line.strip())
            if match:
                listing.append((int(match.group(1)), int(match.group(2))))
        logger.debug("Mailbox lists %s messages", len(listing))
        return listing

    def fetch_header(self, sequence_number: int) -> str:
        _, lines, _ = self._session().top(sequence_number, 0)
        return self._join_payload(lines)

    def fetch_body(self, sequence_number: int) -> str:
        _, lines, _ = self._session().retr(sequence_number)
        return self._join_payload(lines)

    def close(self) -> None:
        """Send QUIT and drop the socket; safe to call more than once."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.quit()
        except (poplib.error_proto, OSError) as exc:
            logger.warning("POP3 QUIT failed, closing socket: %s", exc)
            conn.close()
        logger.info("POP3 connection closed")

    def _session(self) -> poplib.POP3_SSL:
        if self._conn is None:
            raise TransportError("POP3 session is not connected")
        return self._conn

    @staticmethod
    def _decode_lines(lines: list[bytes]) -> list[str]:
        return [decode_raw(line) for line in lines]

    @classmethod
    def _join_payload(cls, lines: list[bytes]) -> str:
        kept = [line for line in cls._decode_lines(lines) if line.strip() not in STATUS_LINES]
        return CRLF.join(kept) + CRLF if kept else ""
