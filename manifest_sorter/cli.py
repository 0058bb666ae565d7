"""CLI with subcommands: folders, scan, copy, move."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .core.config import (
    CollisionPolicy,
    RunMode,
    RunOptions,
    RunRequest,
    default_max_workers,
    load_folder_mapping,
    parse_mapping_entries,
)
from .core.errors import FatalRunError, ManifestReadError
from .logging.rich_logger import QuietProgressReporter, RichProgressReporter, setup_logging

DONE_VERBS = {
    RunMode.scan: "checked",
    RunMode.copy: "copied",
    RunMode.move: "moved",
}


def _add_mapping_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "manifest",
        type=Path,
        help="CSV manifest with folder name and file name columns",
    )
    parser.add_argument(
        "mappings",
        nargs="*",
        metavar="FOLDER=DIR",
        help="Source directory for a manifest folder",
    )
    parser.add_argument(
        "-m", "--mapping",
        type=Path,
        default=None,
        help="JSON file mapping folder names to source directories",
    )
    parser.add_argument(
        "-w", "-j", "--workers",
        dest="workers",
        type=int,
        default=None,
        help=f"Number of worker processes (default: {default_max_workers()})",
    )
    parser.add_argument(
        "-b", "--batch-size",
        type=int,
        default=200,
        help="Jobs sent to a worker at a time (default: 200)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="manifest-sorter",
        description="Check or transfer the photos listed in a CSV manifest.",
    )

    # Global options
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write a debug log to this file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ============ FOLDERS command ============
    folders_parser = subparsers.add_parser(
        "folders",
        help="List the folder names in a manifest with row counts",
    )
    folders_parser.add_argument("manifest", type=Path, help="CSV manifest")

    # ============ SCAN command ============
    scan_parser = subparsers.add_parser(
        "scan",
        help="Check which listed files exist in their source directories",
    )
    _add_mapping_arguments(scan_parser)

    # ============ COPY / MOVE commands ============
    for name, help_text in (
        ("copy", "Copy listed files into OUTPUT/<folder>/"),
        ("move", "Move listed files into OUTPUT/<folder>/"),
    ):
        transfer_parser = subparsers.add_parser(name, help=help_text)
        _add_mapping_arguments(transfer_parser)
        transfer_parser.add_argument(
            "-o", "--output",
            type=Path,
            required=True,
            help="Destination root",
        )
        transfer_parser.add_argument(
            "--collision",
            type=str,
            choices=[policy.value for policy in CollisionPolicy],
            default=CollisionPolicy.rename.value,
            help="What to do when a destination file exists (default: rename)",
        )
        transfer_parser.add_argument(
            "--raw",
            action="store_true",
            help="Also transfer RAW files (.cr2, .nef, ...) with the same base name",
        )

    return parser


def build_mapping(args: argparse.Namespace) -> dict[str, Path]:
    """Merge ``--mapping`` file entries with ``FOLDER=DIR`` arguments."""
    mapping: dict[str, Path] = {}
    if args.mapping:
        mapping.update(load_folder_mapping(args.mapping))
    mapping.update(parse_mapping_entries(args.mappings))
    return mapping


def build_request(args: argparse.Namespace) -> RunRequest:
    """Build a RunRequest from parsed arguments."""
    mode = RunMode(args.command)
    options = {
        "mode": mode,
        "batch_size": args.batch_size,
    }
    if args.workers is not None:
        options["max_workers"] = args.workers
    if mode != RunMode.scan:
        options["collision"] = CollisionPolicy(args.collision)
        options["include_raw_siblings"] = args.raw

    return RunRequest(
        manifest_path=args.manifest,
        destination_root=getattr(args, "output", None),
        folder_mapping=build_mapping(args),
        options=RunOptions(**options),
    )


# ============ Command Handlers ============

def cmd_folders(args: argparse.Namespace, reporter) -> int:
    """Handle the folders command."""
    from .services.manifest import summarize_manifest

    summary = summarize_manifest(args.manifest)
    reporter.print_folders(summary)
    reporter.info(f"{len(summary.folders)} folders in {args.manifest}")
    return 0


def cmd_run(args: argparse.Namespace, reporter) -> int:
    """Handle scan, copy and move."""
    from .services.runner import TransferRunner

    request = build_request(args)
    options = request.options
    scan = options.mode == RunMode.scan

    reporter.print_header(f"manifest-sorter {options.mode.value}")
    config_items = {
        "Manifest": str(request.manifest_path),
        "Mapped Folders": len(request.folder_mapping),
        "Mode": options.mode.value,
        "Workers": options.max_workers,
        "Batch Size": options.batch_size,
    }
    if not scan:
        config_items["Destination"] = str(request.destination_root)
        config_items["Collision"] = options.collision.value
        config_items["RAW Siblings"] = options.include_raw_siblings
    reporter.print_config(config_items)

    reporter.start_phase("Scanning" if scan else options.mode.value.capitalize(), 0)
    runner = TransferRunner(request, sink=reporter, prompt=reporter.ask_collision)
    try:
        state = runner.run()
    except FatalRunError:
        # Already reported through the sink
        return 1
    finally:
        reporter.end_phase()

    reporter.print_folder_report(state.per_folder, scan=scan)
    reporter.print_stats(state, runner.elapsed_seconds)

    if state.cancelled:
        reporter.warning("Run cancelled; files already transferred were kept.")
        return 130
    if state.failed:
        return 1
    reporter.success(f"{state.completed} files {DONE_VERBS[options.mode]}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(
        verbose=getattr(args, "verbose", False),
        quiet=getattr(args, "quiet", False),
        log_file=getattr(args, "log_file", None),
    )

    if getattr(args, "quiet", False):
        reporter = QuietProgressReporter()
    else:
        reporter = RichProgressReporter(verbose=getattr(args, "verbose", False))

    # No command specified - show help
    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "folders":
            return cmd_folders(args, reporter)
        elif args.command in ("scan", "copy", "move"):
            return cmd_run(args, reporter)
        else:
            reporter.error(f"Unknown command: {args.command}")
            return 1

    except KeyboardInterrupt:
        # Clean exit on Ctrl+C - no stack trace
        return 130
    except (ValidationError, ValueError, ManifestReadError) as e:
        reporter.error(f"Error: {e}")
        return 1
    except Exception as e:
        reporter.error(f"Error: {e}")
        if getattr(args, "verbose", False):
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
