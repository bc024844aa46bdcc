"""Entry point that harvests spreadsheet attachments from a POP3 mailbox."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mail_harvest.allow_list import AllowListFilter
from mail_harvest.attachments import AttachmentExtractor
from mail_harvest.config import Settings
from mail_harvest.header_projection import HeaderProjector
from mail_harvest.ledger import ProcessedEmailStore, StatusOutcome
from mail_harvest.models import AttachmentStatus
from mail_harvest.pipeline import PipelineOrchestrator
from mail_harvest.pop3_client import Pop3Transport, TransportError
from mail_harvest.writer import AttachmentWriter, EmlWriter

load_dotenv()

logger = logging.getLogger("harvest_mailbox")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Download spreadsheet attachments from allow-listed POP3 mail."
    )
    parser.add_argument("--max-messages", type=positive_int, help="Limit how many messages to inspect")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Extract attachments but write neither files nor the ledger",
    )
    maintenance = parser.add_mutually_exclusive_group()
    maintenance.add_argument(
        "--set-status",
        nargs="+",
        metavar=("STATUS", "FILENAME"),
        help="Set STATUS (Pending Approval, Approved, Rejected) on the named attachment files",
    )
    maintenance.add_argument(
        "--list-attachments",
        action="store_true",
        help="Print the attachments recorded in the ledger as JSON",
    )
    return parser


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError("Must be at least 1")
    return number


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def set_status(store: ProcessedEmailStore, values: list[str]) -> int:
    if len(values) < 2:
        raise SystemExit("--set-status needs a status followed by at least one filename.")
    try:
        status = AttachmentStatus.parse(values[0])
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    updates = store.update_attachment_status(values[1:], status)
    for update in updates:
        print(f"{update.filename}: {update.outcome.value}")
    return 0 if all(u.outcome is not StatusOutcome.NOT_FOUND for u in updates) else 1


def run_pipeline(settings: Settings, store: ProcessedEmailStore, args: argparse.Namespace) -> int:
    transport = Pop3Transport(settings)
    try:
        transport.connect()
    except TransportError as exc:
        logger.error("%s", exc)
        return 2

    orchestrator = PipelineOrchestrator(
        transport=transport,
        store=store,
        allow_filter=AllowListFilter(settings.load_allow_list()),
        projector=HeaderProjector(settings.load_header_filter().headers_to_filter),
        extractor=AttachmentExtractor(settings.attachment_extensions),
        attachment_writer=AttachmentWriter(settings.attachment_dir),
        eml_writer=EmlWriter(settings.eml_dir),
        write_duplicate_attachments=settings.write_duplicate_attachments,
    )
    orchestrator.run(max_messages=args.max_messages, dry_run=args.dry_run)
    return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)
    store = ProcessedEmailStore(settings.ledger_path)

    if args.list_attachments:
        print(json.dumps(store.list_attachments(), ensure_ascii=False, indent=4))
        sys.exit(0)
    if args.set_status:
        sys.exit(set_status(store, args.set_status))

    sys.exit(run_pipeline(settings, store, args))


if __name__ == "__main__":
    main()
