"""Write extracted attachments and raw messages to disk without overwriting."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from .models import AttachmentRecord
from .utils import encode_raw

logger = logging.getLogger(__name__)


class WriteResult(str, Enum):
    SAVED = "saved"
    EXISTS = "exists"


def write_if_absent(path: Path, payload: bytes) -> WriteResult:
    """Create ``path`` with ``payload`` unless a file is already there."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("xb") as handle:
            handle.write(payload)
    except FileExistsError:
        return WriteResult.EXISTS
    return WriteResult.SAVED


class AttachmentWriter:
    """Store attachment bytes as ``<attachment hash>.<extension>``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def save(self, record: AttachmentRecord) -> WriteResult:
        path = self.output_dir / record.filename
        result = write_if_absent(path, record.raw_decoded_bytes)
        if result is WriteResult.SAVED:
            logger.info("Attachment saved: %s", path)
        else:
            logger.info("Attachment already exists: %s", path)
        return result


class EmlWriter:
    """Store a raw message as ``<content hash>.eml``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def save(self, content_hash: str, raw_message: str) -> WriteResult:
        path = self.output_dir / f"{content_hash}.eml"
        result = write_if_absent(path, encode_raw(raw_message))
        logger.debug("Raw message %s: %s", path, result.value)
        return result
