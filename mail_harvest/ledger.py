"""JSON ledger of processed messages, keyed by message content hash."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Iterable, Mapping

from .models import AttachmentStatus

logger = logging.getLogger(__name__)

Ledger = dict[str, dict[str, Any]]


class StatusOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    EXTENSION_MISMATCH = "extension_mismatch"


@dataclass(frozen=True)
class StatusUpdate:
    filename: str
    outcome: StatusOutcome
    message_hash: str | None = None


def split_attachment_filename(filename: str) -> tuple[str, str]:
    """``/any/dir/<hash>.<ext>`` -> ``(hash, ext)``."""
    name = Path(filename).name
    stem, _, extension = name.rpartition(".")
    if not stem:
        return name, ""
    return stem, extension


class ProcessedEmailStore:
    """Load, merge and rewrite the processed-email ledger.

    Entries are never removed. Every write replaces the whole file through a
    temporary file in the same directory, so a failed write leaves the previous
    ledger in place.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.entries: Ledger = {}

    def load(self) -> Ledger:
        """Read the ledger; a missing or corrupt file counts as empty."""
        self.entries = self._read()
        logger.info("Loaded %s processed emails from %s", len(self.entries), self.path)
        return self.entries

    def merge(self, new_entries: Mapping[str, Mapping[str, Any]]) -> Ledger:
        """Key-wise union with the loaded snapshot, then persist."""
        for content_hash, entry in new_entries.items():
            self.entries[content_hash] = dict(entry)
        self.persist()
        logger.info("Merged %s new entries into %s", len(new_entries), self.path)
        return self.entries

    def persist(self) -> None:
        self._write(self.entries)

    def list_attachments(self) -> list[dict[str, Any]]:
        """Attachment records grouped by the message that delivered them."""
        listing: list[dict[str, Any]] = []
        for content_hash, entry in self._read().items():
            attachments = entry.get("attachments") if isinstance(entry, dict) else None
            if not attachments:
                continue
            listing.append(
                {
                    "hash": content_hash,
                    "subject": entry.get("subject"),
                    "date": entry.get("date"),
                    "read_date": entry.get("read_date"),
                    "attachments": attachments,
                }
            )
        return listing

    def update_attachment_status(
        self, filenames: Iterable[str], new_status: AttachmentStatus
    ) -> list[StatusUpdate]:
        """Set ``new_status`` on the attachments named by ``filenames``.

        Works on a fresh read of the file and only rewrites it when at least one
        status actually changed.
        """
        ledger = self._read()
        updates: list[StatusUpdate] = []

        for filename in filenames:
            attachment_hash, extension = split_attachment_filename(filename)
            update = StatusUpdate(filename, StatusOutcome.NOT_FOUND)

            for content_hash, entry in ledger.items():
                attachments = entry.get("attachments") if isinstance(entry, dict) else None
                record = attachments.get(attachment_hash) if isinstance(attachments, dict) else None
                if not isinstance(record, dict):
                    continue
                if str(record.get("extension", "")).lower() != extension.lower():
                    update = StatusUpdate(filename, StatusOutcome.EXTENSION_MISMATCH, content_hash)
                    continue
                if record.get("status") == new_status.value:
                    update = StatusUpdate(filename, StatusOutcome.UNCHANGED, content_hash)
                else:
                    record["status"] = new_status.value
                    update = StatusUpdate(filename, StatusOutcome.UPDATED, content_hash)
                break

            if update.outcome is StatusOutcome.UPDATED:
                logger.info("Attachment status set to '%s' for %s", new_status.value, filename)
            elif update.outcome is StatusOutcome.UNCHANGED:
                logger.info("Attachment %s already has status '%s'", filename, new_status.value)
            elif update.outcome is StatusOutcome.EXTENSION_MISMATCH:
                logger.warning("Attachment %s exists with a different extension", filename)
            else:
                logger.warning("No ledger entry holds attachment %s", filename)
            updates.append(update)

        if any(update.outcome is StatusOutcome.UPDATED for update in updates):
            self._write(ledger)
            self.entries = ledger
        return updates

    def _read(self) -> Ledger:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("Ledger %s does not exist yet; starting empty", self.path)
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ledger %s is unreadable (%s); starting empty", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ledger %s does not hold a JSON object; starting empty", self.path)
            return {}
        return data

    def _write(self, ledger: Ledger) -> None:
        # Serialize fully before the old file is touched.
        payload = json.dumps(ledger, ensure_ascii=False, indent=4) + "\n"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.path.parent, prefix=f".{self.path.name}.", delete=False
        ) as tmp:
            tmp.write(payload)
            tmp_path = Path(tmp.name)
        try:
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
