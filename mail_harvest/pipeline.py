"""End-to-end run: list, filter, dedupe, fetch, extract, write and record."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Optional

from .allow_list import AllowListFilter
from .attachments import AttachmentExtractor
from .dedupe import ContentDeduplicator, message_hash
from .header_projection import HeaderProjector
from .ledger import ProcessedEmailStore
from .message_info import extract_message_info
from .models import MailTransport, Message
from .writer import AttachmentWriter, EmlWriter, WriteResult

logger = logging.getLogger(__name__)


class RunStage(str, Enum):
    LIST = "list"
    FETCH_HEADERS = "fetch_headers"
    ALLOW_FILTER = "allow_filter"
    DEDUP_MESSAGES = "dedup_messages"
    PROJECT_HEADERS = "project_headers"
    FETCH_BODIES = "fetch_bodies"
    CLOSE_TRANSPORT = "close_transport"
    EARLY_EXIT = "early_exit"
    EXTRACT_ATTACHMENTS = "extract_attachments"
    WRITE_FILES = "write_files"
    BUILD_SUMMARY = "build_summary"
    MERGE_AND_PERSIST = "merge_and_persist"


@dataclass(frozen=True)
class Batch:
    """The working set handed from one stage to the next."""

    stage: RunStage
    messages: tuple[Message, ...] = ()

    def advance(self, stage: RunStage, messages=None) -> "Batch":
        return replace(self, stage=stage, messages=self.messages if messages is None else tuple(messages))


@dataclass
class RunSummary:
    listed: int = 0
    allowed: int = 0
    duplicate_messages: int = 0
    fetched: int = 0
    with_attachments: int = 0
    attachments: int = 0
    duplicate_attachments: int = 0
    attachments_written: int = 0
    emls_written: int = 0
    persisted: list[str] = field(default_factory=list)
    final_stage: Optional[RunStage] = None


class PipelineOrchestrator:
    """Run the mailbox pipeline once against an open transport."""

    def __init__(
        self,
        *,
        transport: MailTransport,
        store: ProcessedEmailStore,
        allow_filter: AllowListFilter,
        projector: HeaderProjector,
        extractor: AttachmentExtractor,
        attachment_writer: AttachmentWriter,
        eml_writer: EmlWriter,
        write_duplicate_attachments: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.transport = transport
        self.store = store
        self.allow_filter = allow_filter
        self.projector = projector
        self.extractor = extractor
        self.attachment_writer = attachment_writer
        self.eml_writer = eml_writer
        self.write_duplicate_attachments = write_duplicate_attachments
        self.clock = clock or (lambda: datetime.now(tz=UTC))

    def run(self, max_messages: int | None = None, dry_run: bool = False) -> RunSummary:
        summary = RunSummary()
        deduplicator = ContentDeduplicator(self.store.load())

        try:
            batch = self.list_messages(max_messages)
            summary.listed = len(batch.messages)
            batch = self.fetch_headers(batch)
            batch = self.filter_allowed(batch)
            summary.allowed = len(batch.messages)
            batch = self.dedupe_messages(batch, deduplicator)
            summary.duplicate_messages = summary.allowed - len(batch.messages)
            batch = self.project_headers(batch)
            batch = self.fetch_bodies(batch)
            summary.fetched = len(batch.messages)
        finally:
            self.transport.close()
        batch = batch.advance(RunStage.CLOSE_TRANSPORT)

        if not batch.messages:
            return self._early_exit(summary, "no message survived body retrieval")

        batch = self.extract_attachments(batch, deduplicator)
        summary.with_attachments = len(batch.messages)
        for message in batch.messages:
            summary.attachments += len(message.attachments)
            summary.duplicate_attachments += sum(
                1 for record in message.attachments.values() if record.is_duplicate_of
            )
        if not batch.messages:
            return self._early_exit(summary, "no qualifying attachments")

        by_hash = self.rekey(batch)

        if dry_run:
            for content_hash, message in by_hash.items():
                logger.info(
                    "[DRY-RUN] Would store message %s with attachments %s",
                    content_hash,
                    ", ".join(record.filename for record in message.attachments.values()),
                )
            summary.final_stage = RunStage.EXTRACT_ATTACHMENTS
            return summary

        batch = self.write_files(batch.advance(RunStage.WRITE_FILES, by_hash.values()), summary)
        batch = self.build_summary(batch)
        entries = {message.content_hash: message.to_ledger() for message in batch.messages}
        self.store.merge(entries)
        summary.persisted = list(entries)
        summary.final_stage = RunStage.MERGE_AND_PERSIST

        logger.info(
            "Run complete: listed=%s allowed=%s duplicates=%s stored=%s attachments=%s written=%s",
            summary.listed,
            summary.allowed,
            summary.duplicate_messages,
            len(summary.persisted),
            summary.attachments,
            summary.attachments_written,
        )
        return summary

    def list_messages(self, max_messages: int | None = None) -> Batch:
        listing = self.transport.list_messages()
        if max_messages is not None:
            listing = listing[:max_messages]
        messages = [Message(sequence_number=seq, size_bytes=size) for seq, size in listing]
        logger.info("Mailbox lists %s messages", len(messages))
        return Batch(stage=RunStage.LIST, messages=tuple(messages))

    def fetch_headers(self, batch: Batch) -> Batch:
        fetched = [
            replace(
                message,
                raw_header=self.transport.fetch_header(message.sequence_number),
                read_timestamp=self.clock(),
            )
            for message in batch.messages
        ]
        return batch.advance(RunStage.FETCH_HEADERS, fetched)

    def filter_allowed(self, batch: Batch) -> Batch:
        allowed = [message for message in batch.messages if self.allow_filter.matches(message.raw_header)]
        logger.info("%s of %s messages pass the allow-list", len(allowed), len(batch.messages))
        return batch.advance(RunStage.ALLOW_FILTER, allowed)

    def dedupe_messages(self, batch: Batch, deduplicator: ContentDeduplicator) -> Batch:
        survivors: list[Message] = []
        for message in batch.messages:
            result = deduplicator.check_message(message_hash(message.raw_header))
            message = replace(
                message, content_hash=result.content_hash, is_duplicate_message=result.is_duplicate
            )
            if message.is_duplicate_message:
                logger.info(
                    "Skipping message %s: already processed (%s)",
                    message.sequence_number,
                    result.kind.value,
                )
                continue
            survivors.append(message)
        return batch.advance(RunStage.DEDUP_MESSAGES, survivors)

    def project_headers(self, batch: Batch) -> Batch:
        projected = [
            replace(message, projected_header=self.projector.project(message.raw_header))
            for message in batch.messages
        ]
        return batch.advance(RunStage.PROJECT_HEADERS, projected)

    def fetch_bodies(self, batch: Batch) -> Batch:
        with_bodies: list[Message] = []
        for message in batch.messages:
            raw_body = self.transport.fetch_body(message.sequence_number)
            if not self.extractor.has_candidate(raw_body):
                logger.info("Message %s carries no spreadsheet attachment", message.sequence_number)
                continue
            with_bodies.append(replace(message, raw_body=raw_body))
        return batch.advance(RunStage.FETCH_BODIES, with_bodies)

    def extract_attachments(self, batch: Batch, deduplicator: ContentDeduplicator) -> Batch:
        extracted: list[Message] = []
        for message in batch.messages:
            records = self.extractor.extract(message.raw_body or "", deduplicator)
            if not records:
                logger.info("Message %s has no qualifying attachment", message.content_hash)
                continue
            extracted.append(
                replace(message, attachments={record.attachment_hash: record for record in records})
            )
        return batch.advance(RunStage.EXTRACT_ATTACHMENTS, extracted)

    @staticmethod
    def rekey(batch: Batch) -> dict[str, Message]:
        """Index messages by content hash; a repeated hash keeps the last message."""
        return {message.content_hash: message for message in batch.messages}

    def write_files(self, batch: Batch, summary: RunSummary | None = None) -> Batch:
        for message in batch.messages:
            for record in message.attachments.values():
                if record.is_duplicate_of and not self.write_duplicate_attachments:
                    logger.info("Not writing duplicate attachment %s", record.filename)
                    continue
                if self.attachment_writer.save(record) is WriteResult.SAVED and summary is not None:
                    summary.attachments_written += 1
            result = self.eml_writer.save(message.content_hash, message.raw_body or "")
            if result is WriteResult.SAVED and summary is not None:
                summary.emls_written += 1
        return batch

    def build_summary(self, batch: Batch) -> Batch:
        described = [
            replace(
                message,
                extracted_info=extract_message_info(message.raw_body or "", message.read_timestamp),
            )
            for message in batch.messages
        ]
        return batch.advance(RunStage.BUILD_SUMMARY, described)

    @staticmethod
    def _early_exit(summary: RunSummary, reason: str) -> RunSummary:
        logger.info("Nothing new to record: %s", reason)
        summary.final_stage = RunStage.EARLY_EXIT
        return summary
