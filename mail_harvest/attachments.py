"""Targeted extraction of base64 spreadsheet attachments from raw message bodies.

This is a scan, not a MIME parser. A part is only recognised when:

* its ``Content-Disposition: attachment; filename="..."`` line is present,
* its payload is base64 encoded, and
* a literal ``--`` boundary sequence follows the payload before the next part.

Parts that break any of these assumptions are ignored rather than reported.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from pathlib import PurePosixPath
from typing import Iterable, Optional

from .config import SPREADSHEET_MIME_TYPES
from .dedupe import ContentDeduplicator, attachment_hash
from .models import AttachmentRecord
from .utils import printable_text

logger = logging.getLogger(__name__)

DISPOSITION_PATTERN = re.compile(
    r'Content-Disposition:\s*attachment;\s*filename="([^"]+)"', re.IGNORECASE
)
TRANSFER_ENCODING_LABEL = re.compile(r"Content-Transfer-Encoding:\s*base64", re.IGNORECASE)
BOUNDARY_MARKER = "--"
DEFAULT_MIME_TYPE = "application/octet-stream"


def mime_type_for(extension: str) -> str:
    return SPREADSHEET_MIME_TYPES.get(extension.lower(), DEFAULT_MIME_TYPE)


def file_extension(filename: str) -> str:
    return PurePosixPath(filename).suffix.lstrip(".").lower()


def decode_base64(encoded: str) -> Optional[bytes]:
    """Strictly decode base64 text spread over lines; None when malformed."""
    compact = "".join(encoded.split())
    if not compact:
        return None
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        return None


class AttachmentExtractor:
    """Pull qualifying spreadsheet attachments out of a raw message body."""

    def __init__(self, extensions: Iterable[str] = tuple(SPREADSHEET_MIME_TYPES)) -> None:
        self.extensions = {ext.lower().lstrip(".") for ext in extensions}

    def has_candidate(self, raw_body: str) -> bool:
        """Cheap check for at least one spreadsheet disposition line."""
        return any(
            file_extension(match.group(1)) in self.extensions
            for match in DISPOSITION_PATTERN.finditer(raw_body)
        )

    def extract(
        self, raw_body: str, deduplicator: ContentDeduplicator | None = None
    ) -> list[AttachmentRecord]:
        records: list[AttachmentRecord] = []
        seen: set[str] = set()

        for match in DISPOSITION_PATTERN.finditer(raw_body):
            original_filename = printable_text(match.group(1))
            extension = file_extension(original_filename)
            if extension not in self.extensions:
                logger.debug("Ignoring non-spreadsheet attachment %s", original_filename)
                continue

            end = raw_body.find(BOUNDARY_MARKER, match.end())
            if end == -1:
                logger.debug("No boundary after attachment %s; ignoring", original_filename)
                continue

            encoded = TRANSFER_ENCODING_LABEL.sub("", raw_body[match.end():end]).strip()
            decoded = decode_base64(encoded)
            if decoded is None:
                logger.info("Attachment %s is not valid base64; ignoring", original_filename)
                continue

            digest = attachment_hash(encoded)
            if digest in seen:
                logger.debug("Attachment %s repeats within the same message", original_filename)
                continue
            seen.add(digest)

            record = AttachmentRecord(
                attachment_hash=digest,
                original_filename=original_filename,
                extension=extension,
                mime_type=mime_type_for(extension),
                decoded_size_bytes=len(decoded),
                raw_decoded_bytes=decoded,
                raw_encoded_text=encoded,
            )
            if deduplicator is not None:
                record.is_duplicate_of = deduplicator.check_attachment(digest).duplicate_of
            records.append(record)

        return records
