from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from polipulse.app import (
    add_policy_record,
    create_template,
    delete_policy_record,
    import_policy_csv,
    list_policy_records,
    preview_policy_csv,
    search_policy_numbers,
)
from polipulse.config import configure_logging
from polipulse.domain.importing import ParseError, ResolutionPolicy, RunStatus
from polipulse.domain.policy import POLICY_FIELDS
from polipulse.domain.validation import PolicyValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

    from polipulse.domain.importing import ImportSession

log = logging.getLogger(__name__)

EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_IMPORT_FAILURES = 3


def _option_name(field_name: str) -> str:
    return "--" + field_name.replace("_", "-")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import and manage insurance policy records")
    subparsers = parser.add_subparsers(dest="command", required=True)

    template = subparsers.add_parser("template", help="Write the CSV import template")
    template.add_argument(
        "--output",
        type=Path,
        default=Path.cwd(),
        help="Target file or directory (default: current directory)",
    )

    preview = subparsers.add_parser("preview", help="Parse and validate a CSV file")
    preview.add_argument("file", type=Path, help="CSV file to preview")

    import_ = subparsers.add_parser("import", help="Import policies from a CSV file")
    import_.add_argument("file", type=Path, help="CSV file to import")
    import_.add_argument(
        "--policy",
        choices=[policy.value for policy in ResolutionPolicy],
        help="How to treat rows whose policy number is already stored",
    )
    import_.add_argument(
        "--yes",
        action="store_true",
        help="Do not ask for confirmation before writing",
    )
    import_.add_argument(
        "--workers",
        type=int,
        help="Number of concurrent store calls (default: POLIPULSE_IMPORT_WORKERS or 1)",
    )

    add = subparsers.add_parser("add", help="Add a single policy")
    for name in POLICY_FIELDS:
        add.add_argument(_option_name(name), dest=name, default="", help=f"Policy {name}")

    delete = subparsers.add_parser("delete", help="Delete a policy by number")
    delete.add_argument("policy_no", type=str, help="Policy number to delete")

    list_ = subparsers.add_parser("list", help="List stored policies")
    list_.add_argument(
        "--search",
        type=str,
        help="Only print policy numbers containing this fragment",
    )

    args = parser.parse_args(list(argv))
    if args.command == "import" and args.workers is not None and args.workers < 1:
        raise ValueError("--workers must be at least 1")
    return args


def _ask_confirmation(session: ImportSession) -> bool:
    answer = input(f"Import {len(session.valid_rows)} rows ({session.policy.value})? [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


def _log_progress(percent: int) -> None:
    log.info("Import progress: %s%%", percent)


def _run_import(args: argparse.Namespace) -> int:
    unresolved = False

    def refuse(_summary: object) -> None:
        nonlocal unresolved
        unresolved = True
        log.error("Policies already stored; rerun with --policy to choose how to treat them")

    confirm: Callable[[ImportSession], bool] | None = None if args.yes else _ask_confirmation
    outcome = import_policy_csv(
        args.file,
        policy=args.policy,
        decide=refuse,
        confirm=confirm,
        workers=args.workers,
        on_progress=_log_progress,
    )
    if outcome is None:
        return EXIT_USAGE if unresolved else 0
    log.info(
        "%s: %s inserted, %s updated, %s skipped, %s failed",
        outcome.message,
        outcome.inserted,
        outcome.updated,
        outcome.skipped,
        outcome.failed,
    )
    for failure in outcome.failures:
        log.warning("Row %s (%s): %s", failure.origin_index + 1, failure.policy_no, failure.reason)
    if outcome.status is RunStatus.COMPLETED_WITH_FAILURES:
        return EXIT_IMPORT_FAILURES
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "template":
        path = create_template(args.output)
        log.info("Template written to %s", path)
    elif args.command == "preview":
        preview = preview_policy_csv(args.file)
        log.info("%s valid rows, %s invalid rows", preview.valid_count, preview.invalid_count)
        for index, reason in preview.errors.items():
            log.warning("Row %s: %s", index + 1, reason)
    elif args.command == "import":
        return _run_import(args)
    elif args.command == "add":
        record = add_policy_record({name: getattr(args, name) for name in POLICY_FIELDS})
        log.info("Added policy %s", record.policy_no)
    elif args.command == "delete":
        delete_policy_record(args.policy_no)
        log.info("Deleted policy %s", args.policy_no)
    elif args.command == "list":
        if args.search:
            for policy_no in search_policy_numbers(args.search):
                log.info("%s", policy_no)
        else:
            for record in list_policy_records():
                log.info(
                    "%s | %s | %s | %s | %.2f",
                    record.policy_no,
                    record.client_name,
                    record.company_name,
                    record.renewal_date,
                    record.premium,
                )
    else:
        raise ValueError(f"Unsupported command: {args.command}")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(EXIT_USAGE)

    try:
        exit_code = _dispatch(parsed_args)
    except (PolicyValidationError, ParseError) as exc:
        log.error("Invalid input: %s", exc)  # noqa: TRY400
        sys.exit(EXIT_USAGE)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(EXIT_FATAL)
    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
