"""Command line entry point that moves a folder's items into another mailbox folder."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from .audit_log import open_audit_sink
from .config import Settings
from .errors import MailMoverError
from .graph_client import GraphClient
from .models import TransferOutcome, TransferStatus
from .orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)

EXIT_CODES = {
    TransferStatus.COMPLETED: 0,
    TransferStatus.FAILED: 1,
    TransferStatus.ABORTED: 2,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Move mail items between mailbox folders in size-bounded batches."
    )
    parser.add_argument("--source-mailbox", required=True, help="Mailbox (UPN) holding the items")
    parser.add_argument("--source-folder", help="Folder path, e.g. 'Inbox/Projects'")
    parser.add_argument("--target-mailbox", help="Destination mailbox (defaults to the source mailbox)")
    parser.add_argument("--target-folder", help="Destination folder path")
    parser.add_argument("--filter", dest="search_filter", help="OData $filter narrowing the items to move")
    parser.add_argument("--batch-size", type=positive_int, help="Batch size threshold in bytes")
    parser.add_argument("--wait-time", type=int, help="Seconds between destination item-count checks")
    parser.add_argument(
        "--no-check-target-empty",
        dest="check_target_empty",
        action="store_false",
        default=None,
        help="Do not wait for the destination folder to drain between batches",
    )
    parser.add_argument(
        "--no-confirm",
        dest="confirm",
        action="store_false",
        default=None,
        help="Continue with the next batch without asking",
    )
    parser.add_argument("--log-file", type=Path, help="Write an audit record per moved item to this file")
    parser.add_argument("--delimiter", help="Audit file delimiter (default ';')")
    parser.add_argument("--list-folders", action="store_true", help="List the source mailbox folders and exit")
    parser.add_argument("--no-progress", action="store_true", help="Hide the per-batch progress bar")
    return parser


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"Must be positive: {value}")
    return parsed


def cli_overrides(args: argparse.Namespace) -> dict:
    """Settings keyword arguments for the flags given; these win over the environment."""
    overrides = {
        "BATCH_SIZE_BYTES": args.batch_size,
        "BATCH_WAIT_SECONDS": args.wait_time,
        "CHECK_TARGET_EMPTY": args.check_target_empty,
        "CONFIRM_BATCHES": args.confirm,
        "AUDIT_LOG_PATH": args.log_file,
        "AUDIT_DELIMITER": args.delimiter,
    }
    return {key: value for key, value in overrides.items() if value is not None}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def report(outcome: TransferOutcome) -> None:
    if outcome.completed:
        print(f"Transfer complete: {outcome.items_moved} items in {outcome.batches_completed} batch(es).")
    elif outcome.aborted:
        print(
            f"Transfer stopped by operator after batch {outcome.batches_completed}/{outcome.batches_total}; "
            f"{outcome.items_moved} items moved."
        )
    else:
        print(f"Transfer failed: {outcome.error}", file=sys.stderr)
    if outcome.audit_location:
        print(f"Audit log: {outcome.audit_location}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.list_folders and not (args.source_folder and args.target_folder):
        parser.error("--source-folder and --target-folder are required unless --list-folders is given")

    try:
        settings = Settings(**cli_overrides(args))
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    configure_logging(settings.log_level)
    target_mailbox = args.target_mailbox or args.source_mailbox

    try:
        with GraphClient(settings) as client:
            if args.list_folders:
                for path, folder in client.list_folders(args.source_mailbox):
                    print(f"{path}\t{folder.folder_id}")
                return 0

            source = client.bind(args.source_folder, args.source_mailbox)
            items = list(client.iter_items(source, search_filter=args.search_filter))
            logger.info("Selected %s items from '%s' in %s", len(items), source.display_name, source.mailbox)

            audit_sink = None
            if settings.audit_enabled:
                audit_sink = open_audit_sink(settings.audit_log_path, settings.audit_delimiter)

            orchestrator = TransferOrchestrator(
                client,
                audit_sink=audit_sink,
                acting_user=client.acting_user(),
                quota_gate_timeout=settings.quota_gate_timeout_seconds,
                show_progress=not args.no_progress,
            )
            outcome = orchestrator.run(
                items,
                target_mailbox,
                args.target_folder,
                threshold=settings.batch_size_bytes,
                wait_time=settings.batch_wait_seconds,
                check_target_empty=settings.check_target_empty,
                confirm=settings.confirm_batches,
                log_enabled=settings.audit_enabled,
            )
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except (MailMoverError, OSError) as exc:
        logger.error("%s", exc)
        print(f"Transfer failed: {exc}", file=sys.stderr)
        return 1

    report(outcome)
    return EXIT_CODES[outcome.status]


if __name__ == "__main__":
    sys.exit(main())
