"""Shared test fixtures for the mailbox harvesting test suite."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from mail_harvest.allow_list import AllowListFilter
from mail_harvest.attachments import AttachmentExtractor
from mail_harvest.config import AllowList
from mail_harvest.header_projection import HeaderProjector
from mail_harvest.ledger import ProcessedEmailStore
from mail_harvest.pipeline import PipelineOrchestrator
from mail_harvest.writer import AttachmentWriter, EmlWriter

from tests.helpers import RECEIVER, SENDER

FIXED_NOW = datetime(2023, 10, 2, 9, 30, 0, tzinfo=UTC)


@pytest.fixture
def allow_list() -> AllowList:
    return AllowList(senders=[SENDER], receivers=[RECEIVER])


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "processed_emails.json"


@pytest.fixture
def attachment_dir(tmp_path: Path) -> Path:
    return tmp_path / "excels"


@pytest.fixture
def eml_dir(tmp_path: Path) -> Path:
    return tmp_path / "emails"


@pytest.fixture
def make_orchestrator(allow_list: AllowList, ledger_path: Path, attachment_dir: Path, eml_dir: Path):
    """Build an orchestrator around a transport, writing under ``tmp_path``."""

    def factory(transport, **overrides) -> PipelineOrchestrator:
        options = dict(
            transport=transport,
            store=ProcessedEmailStore(ledger_path),
            allow_filter=AllowListFilter(allow_list),
            projector=HeaderProjector(["From", "To", "Subject", "Date"]),
            extractor=AttachmentExtractor(),
            attachment_writer=AttachmentWriter(attachment_dir),
            eml_writer=EmlWriter(eml_dir),
            clock=lambda: FIXED_NOW,
        )
        options.update(overrides)
        return PipelineOrchestrator(**options)

    return factory
