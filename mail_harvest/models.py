"""Typed containers shared across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol


class AttachmentStatus(str, Enum):
    """Review state of an extracted attachment."""

    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @classmethod
    def parse(cls, value: str) -> "AttachmentStatus":
        """Accept either the stored value or the member name, case-insensitively."""
        wanted = value.strip().replace("_", "").replace(" ", "").lower()
        for status in cls:
            if wanted in (status.name.replace("_", "").lower(), status.value.replace(" ", "").lower()):
                return status
        raise ValueError(f"Unknown attachment status: {value!r}")


class MailTransport(Protocol):
    """Mailbox session used by the pipeline."""

    def list_messages(self) -> list[tuple[int, int]]: ...

    def fetch_header(self, sequence_number: int) -> str: ...

    def fetch_body(self, sequence_number: int) -> str: ...

    def close(self) -> None: ...


@dataclass
class AttachmentRecord:
    """One spreadsheet attachment extracted from a message body."""

    attachment_hash: str
    original_filename: str
    extension: str
    mime_type: str
    decoded_size_bytes: int
    raw_decoded_bytes: bytes = field(repr=False)
    raw_encoded_text: str = field(repr=False)
    status: AttachmentStatus = AttachmentStatus.PENDING_APPROVAL
    is_duplicate_of: Optional[str] = None

    @property
    def filename(self) -> str:
        return f"{self.attachment_hash}.{self.extension}"

    def to_ledger(self) -> dict[str, Any]:
        """Serializable form stored in the ledger (raw payloads omitted)."""
        return {
            "filename": self.filename,
            "original_file_name": self.original_filename,
            "extension": self.extension,
            "status": self.status.value,
            "size": self.decoded_size_bytes,
            "mime": self.mime_type,
            "is_duplicate": self.is_duplicate_of,
        }


@dataclass
class ExtractedInfo:
    """Summary fields scanned out of a raw message."""

    sender: Optional[str]
    recipients: list[str]
    subject: Optional[str]
    date: Optional[str]
    read_date: Optional[str]


@dataclass
class Message:
    """A mailbox item as it moves through one run.

    ``sequence_number`` only addresses the message inside the current
    session; ``content_hash`` is its identity across runs.
    """

    sequence_number: int
    size_bytes: int
    raw_header: str = ""
    read_timestamp: Optional[datetime] = None
    content_hash: Optional[str] = None
    is_duplicate_message: bool = False
    projected_header: str = ""
    raw_body: Optional[str] = None
    extracted_info: Optional[ExtractedInfo] = None
    attachments: dict[str, AttachmentRecord] = field(default_factory=dict)

    def to_ledger(self) -> dict[str, Any]:
        info = self.extracted_info or ExtractedInfo(None, [], None, None, None)
        entry: dict[str, Any] = {
            "from": info.sender,
            "to": list(info.recipients),
            "subject": info.subject,
            "date": info.date,
            "read_date": info.read_date,
        }
        if self.attachments:
            entry["attachments"] = {
                attachment_hash: record.to_ledger()
                for attachment_hash, record in self.attachments.items()
            }
        return entry
