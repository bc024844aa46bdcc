"""Content-hash identity and duplicate detection for messages and attachments."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .utils import encode_raw, sha256_hex

logger = logging.getLogger(__name__)


class DuplicateKind(str, Enum):
    NEW = "new"
    LEDGER = "ledger"
    RUN = "run"


@dataclass(frozen=True)
class DedupResult:
    """Outcome of one duplicate check."""

    content_hash: str
    kind: DuplicateKind

    @property
    def is_duplicate(self) -> bool:
        return self.kind is not DuplicateKind.NEW

    @property
    def duplicate_of(self) -> Optional[str]:
        return self.content_hash if self.is_duplicate else None


def header_fields(raw_header: str) -> list[list[str]]:
    """Parse a header block into ``[name, value]`` pairs.

    Folded lines are unfolded, names are lower-cased and runs of whitespace in
    values collapse to a single space. Lines without a colon are ignored.
    """
    fields: list[list[str]] = []
    for line in raw_header.splitlines():
        if not line.strip():
            continue
        if line[0] in " \t" and fields:
            fields[-1][1] = f"{fields[-1][1]} {line.strip()}".strip()
            continue
        name, separator, value = line.partition(":")
        if not separator:
            continue
        fields.append([name.strip().lower(), value.strip()])
    return [[name, " ".join(value.split())] for name, value in fields]


def message_hash(raw_header: str) -> str:
    payload = json.dumps({"fields": header_fields(raw_header)}, ensure_ascii=False, separators=(",", ":"))
    return sha256_hex(encode_raw(payload))


def attachment_hash(encoded_payload: str) -> str:
    """Hash of the still-encoded attachment text."""
    return sha256_hex(encode_raw(encoded_payload))


class ContentDeduplicator:
    """Track known message and attachment hashes for a single run.

    The ledger snapshot is read once; hashes seen during the run are added on
    top of it so later items in the same run are reported as run duplicates.
    """

    def __init__(self, ledger: Mapping[str, Mapping[str, Any]]) -> None:
        self._ledger_messages = set(ledger)
        self._ledger_attachments: set[str] = set()
        for entry in ledger.values():
            attachments = entry.get("attachments") if isinstance(entry, Mapping) else None
            if isinstance(attachments, Mapping):
                self._ledger_attachments.update(attachments)
        self._run_messages: set[str] = set()
        self._run_attachments: set[str] = set()

    def check_message(self, content_hash: str) -> DedupResult:
        return self._check(content_hash, self._ledger_messages, self._run_messages)

    def check_attachment(self, content_hash: str) -> DedupResult:
        return self._check(content_hash, self._ledger_attachments, self._run_attachments)

    @staticmethod
    def _check(content_hash: str, ledger: set[str], run: set[str]) -> DedupResult:
        if content_hash in ledger:
            kind = DuplicateKind.LEDGER
        elif content_hash in run:
            kind = DuplicateKind.RUN
        else:
            kind = DuplicateKind.NEW
            run.add(content_hash)
        logger.debug("Hash %s checked: %s", content_hash, kind.value)
        return DedupResult(content_hash=content_hash, kind=kind)
