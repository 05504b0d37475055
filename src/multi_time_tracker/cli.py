#!/usr/bin/env python3
"""
Command-line interface for multi-time-tracker with subcommand structure.

Each invocation loads the snapshot, applies one operation through the
StateManager, writes the snapshot back and prints the result.
"""

import argparse
import logging
import sys
from functools import partial
from pathlib import Path
from time import sleep

from . import config as config_module
from .backup import import_from_files, import_from_folder
from .clock import FixedClock, SystemClock
from .config import get_backup_dir, get_data_dir, get_setting, get_snapshot_path, load_custom_config
from .config_validation import ConfigValidationError, log_validation_results, validate_config
from .errors import TrackerError, ValidationError
from .output import setup_logging, user_output
from .persistence import DebouncedWriter
from .report import generate_sessions_report, generate_status_report
from .snapshot import load_snapshot, save_snapshot
from .state import StateManager
from .utils import format_duration, parse_timestamp_ms

logger = logging.getLogger(__name__)

LOG_LEVELS = ["NONE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
REPORT_FORMATS = ["table", "csv", "tsv", "json"]


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="multi-time-tracker",
        description="Track time on several tasks at once, with tags",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a tag and a task holding it, then start the task
  %(prog)s add-tag work
  %(prog)s add-task "Write report" --tag 1
  %(prog)s toggle 1

  # Live totals (default subcommand)
  %(prog)s status
  %(prog)s status --format json

  # Pretend it is a different time
  %(prog)s --at "10 minutes ago" toggle 1

  # Back up to the default backup folder and restore from it
  %(prog)s export
  %(prog)s import --folder ~/backups/tracker
  %(prog)s import sessions.csv tag_sessions.csv dict.json
        """,
    )

    # Global options (available for all subcommands)
    parser.add_argument(
        "--config",
        metavar="FILE",
        type=Path,
        help="Path to configuration file (default: uses standard config locations)",
    )
    parser.add_argument(
        "--snapshot",
        metavar="FILE",
        type=Path,
        help="State file (default: snapshot_file from config, or the data directory)",
    )
    parser.add_argument(
        "--at",
        metavar="DATETIME",
        help='Use this time instead of the clock, e.g. "2025-01-01 09:00" or "5 minutes ago"',
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="DEBUG",
        help="Set logging level (default: DEBUG)",
    )
    parser.add_argument(
        "--console-log-level",
        choices=LOG_LEVELS,
        default="ERROR",
        help="Set console logging level (default: ERROR)",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        type=Path,
        help="Log file path (default: ~/.local/share/multi-time-tracker/multi-time-tracker.json.log)",
    )
    parser.add_argument(
        "--no-log-json",
        action="store_true",
        help="Do not output logs in JSON format",
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Subcommand to run")

    # ===== Reports =====
    status_parser = subparsers.add_parser("status", help="Show live totals (default)")
    status_parser.add_argument("--format", choices=REPORT_FORMATS, default="table")
    status_parser.add_argument(
        "--show-deleted", action="store_true", help="Include soft-deleted tasks and tags"
    )
    status_parser.add_argument(
        "--watch",
        action="store_true",
        help="Print the report again every tuning.tick_interval_ms until interrupted",
    )

    sessions_parser = subparsers.add_parser("sessions", help="List closed task sessions")
    sessions_parser.add_argument("--format", choices=REPORT_FORMATS, default="table")
    sessions_parser.add_argument("--task", type=int, metavar="TASK_ID", help="Only this task")

    # ===== Tasks =====
    add_task_parser = subparsers.add_parser("add-task", help="Create a task")
    add_task_parser.add_argument("name")
    add_task_parser.add_argument(
        "--tag", dest="tags", type=int, action="append", default=[], metavar="TAG_ID",
        help="Tag to attach (repeatable)",
    )
    add_task_parser.add_argument("--link", default="", help="Free-text link, e.g. an issue URL")

    edit_task_parser = subparsers.add_parser(
        "edit-task", help="Change name, link and tags of a task in one step"
    )
    edit_task_parser.add_argument("task_id", type=int)
    edit_task_parser.add_argument("--name")
    edit_task_parser.add_argument("--link")
    edit_task_parser.add_argument(
        "--tag", dest="tags", type=int, action="append", metavar="TAG_ID",
        help="Replace the tags with these (repeatable)",
    )

    toggle_parser = subparsers.add_parser("toggle", help="Start or stop a task")
    toggle_parser.add_argument("task_id", type=int)

    set_tags_parser = subparsers.add_parser("set-tags", help="Replace the tags of a task")
    set_tags_parser.add_argument("task_id", type=int)
    set_tags_parser.add_argument("tag_ids", type=int, nargs="*", metavar="TAG_ID")

    rename_task_parser = subparsers.add_parser("rename-task", help="Rename a task")
    rename_task_parser.add_argument("task_id", type=int)
    rename_task_parser.add_argument("name")

    for verb, help_text in (
        ("delete", "Soft-delete a task, stopping it first"),
        ("restore", "Undo a task delete"),
        ("purge", "Remove a task and its sessions for good"),
    ):
        task_parser = subparsers.add_parser(f"{verb}-task", help=help_text)
        task_parser.add_argument("task_id", type=int)

    quick_parser = subparsers.add_parser(
        "quick", help="Create a randomly named task tagged with the quick tag and start it"
    )
    quick_parser.add_argument("--tag-name", help="Tag to use (default: quick_task.tag_name)")

    # ===== Tags =====
    add_tag_parser = subparsers.add_parser("add-tag", help="Create a tag")
    add_tag_parser.add_argument("name")
    add_tag_parser.add_argument("--link", default="")

    rename_tag_parser = subparsers.add_parser("rename-tag", help="Rename a tag")
    rename_tag_parser.add_argument("tag_id", type=int)
    rename_tag_parser.add_argument("name")

    for verb, help_text in (
        ("delete", "Soft-delete a tag, detaching it from its tasks"),
        ("restore", "Undo a tag delete and re-attach it"),
        ("purge", "Remove a tag and its sessions for good"),
    ):
        tag_parser = subparsers.add_parser(f"{verb}-tag", help=help_text)
        tag_parser.add_argument("tag_id", type=int)

    # ===== Backup =====
    export_parser = subparsers.add_parser(
        "export",
        help="Write the backup file set",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Writes sessions.csv, tag_sessions.csv, totals.csv, tag_totals.csv,
dict.json, app_usage.csv and manifest.json.
        """,
    )
    export_parser.add_argument(
        "directory", nargs="?", type=Path, help="Target directory (default: backup_dir)"
    )

    import_parser = subparsers.add_parser(
        "import",
        help="Replace the state with a backup set",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Files are recognised by name. sessions.csv and tag_sessions.csv are required
unless dict.json is given. Without FILES and --folder, the backup_dir is used.
        """,
    )
    import_parser.add_argument("files", nargs="*", type=Path, metavar="FILE")
    import_parser.add_argument("--folder", type=Path, metavar="DIR")

    # ===== Validate =====
    subparsers.add_parser("validate", help="Validate configuration and snapshot")

    return parser


def get_default_log_file(json: bool) -> Path:
    """
    Get the default log file path.

    Returns:
        Path to the default log file in the user's data directory
    """
    log_dir = get_data_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    json_postfix = ".json" if json else ""

    return log_dir / f"multi-time-tracker{json_postfix}.log"


def configure_logging(args: argparse.Namespace, subcommand: str) -> None:
    """
    Configure logging based on command-line arguments.

    Args:
        args: Parsed command-line arguments
        subcommand: The subcommand being executed
    """
    log_level = getattr(logging, args.log_level, 0)
    console_log_level = getattr(logging, args.console_log_level, 0)

    log_file = None
    if args.log_file and log_level > 0:
        log_file = args.log_file
    elif log_level > 0:
        log_file = get_default_log_file(not args.no_log_json)

    # Structured run info, for filtering logs
    run_mode = {
        "subcommand": subcommand,
        "pinned_clock": args.at is not None,
    }

    setup_logging(
        json_format=not args.no_log_json,
        log_level=log_level,
        console_log_level=console_log_level,
        log_file=log_file,
        run_mode=run_mode,
    )


def load_state(args: argparse.Namespace) -> StateManager:
    """Build a StateManager from the snapshot, wired to write it back."""
    snapshot_path = args.snapshot or get_snapshot_path()
    clock = FixedClock(parse_timestamp_ms(args.at)) if args.at else SystemClock()
    writer = DebouncedWriter(
        partial(save_snapshot, file_path=snapshot_path),
        delay_ms=get_setting("tuning", "persist_debounce_ms"),
    )
    state = StateManager(clock=clock, writer=writer)

    snapshot = load_snapshot(snapshot_path)
    if snapshot is not None:
        state.restore_snapshot(snapshot)
    state.ensure_install_time()
    return state


def validate_import_args(args: argparse.Namespace) -> str | None:
    """Validate arguments for import subcommand."""
    if args.files and args.folder:
        return "Error: give either FILES or --folder, not both"
    return None


def validate_edit_task_args(args: argparse.Namespace) -> str | None:
    if args.name is None and args.link is None and args.tags is None:
        return "Error: edit-task needs at least one of --name, --link, --tag"
    return None


def _task_line(state: StateManager, task_id: int) -> str:
    task = state.require_task(task_id)
    total = format_duration(state.task_display_ms(task))
    running = "running" if task.is_running else "paused"
    return f"Task {task.id} '{task.name}': {running}, {total}"


def run_status(args: argparse.Namespace, state: StateManager) -> int:
    """Execute the status subcommand, once or in a refresh loop with --watch."""
    tick_seconds = get_setting("tuning", "tick_interval_ms") / 1000
    while True:
        generate_status_report(
            state,
            state.now(),
            format=args.format,
            show_deleted=args.show_deleted,
            show_seconds=get_setting("display", "show_seconds"),
            hide_hours_if_zero=get_setting("display", "hide_hours_if_zero"),
        )
        if not args.watch:
            return 0
        # Totals are recomputed from the clock, nothing is stored between rounds
        sleep(tick_seconds)


def run_sessions(args: argparse.Namespace, state: StateManager) -> int:
    generate_sessions_report(state, format=args.format, task_id=args.task)
    return 0


def run_add_task(args: argparse.Namespace, state: StateManager) -> int:
    task = state.create_task(args.name, args.tags, args.link)
    user_output(f"Created task {task.id} '{task.name}'", color="green")
    return 0


def run_edit_task(args: argparse.Namespace, state: StateManager) -> int:
    task = state.require_task(args.task_id)
    state.update_task(
        task.id,
        args.name if args.name is not None else task.name,
        args.link if args.link is not None else task.link,
        args.tags if args.tags is not None else task.tag_ids,
    )
    user_output(_task_line(state, task.id))
    return 0


def run_toggle(args: argparse.Namespace, state: StateManager) -> int:
    task = state.require_task(args.task_id)
    if task.is_deleted:
        raise ValidationError(f"Task {task.id} is deleted, restore it first")
    task = state.toggle_task(task.id)
    user_output(_task_line(state, task.id), color="green" if task.is_running else "yellow")
    return 0


def run_set_tags(args: argparse.Namespace, state: StateManager) -> int:
    state.set_task_tags(args.task_id, args.tag_ids)
    user_output(_task_line(state, args.task_id))
    return 0


def run_rename_task(args: argparse.Namespace, state: StateManager) -> int:
    task = state.rename_task(args.task_id, args.name)
    user_output(f"Renamed task {task.id} to '{task.name}'")
    return 0


def run_rename_tag(args: argparse.Namespace, state: StateManager) -> int:
    tag = state.rename_tag(args.tag_id, args.name)
    user_output(f"Renamed tag {tag.id} to '{tag.name}'")
    return 0


def run_delete_task(args: argparse.Namespace, state: StateManager) -> int:
    state.delete_task(args.task_id)
    user_output(f"Deleted task {args.task_id}")
    return 0


def run_restore_task(args: argparse.Namespace, state: StateManager) -> int:
    task = state.restore_task(args.task_id)
    user_output(f"Restored task {task.id} '{task.name}'")
    return 0


def run_purge_task(args: argparse.Namespace, state: StateManager) -> int:
    state.purge_task(args.task_id)
    user_output(f"Purged task {args.task_id} and its sessions", color="red")
    return 0


def run_quick(args: argparse.Namespace, state: StateManager) -> int:
    task = state.start_quick_task(
        tag_name=args.tag_name or get_setting("quick_task", "tag_name"),
        name_prefix=get_setting("quick_task", "name_prefix"),
    )
    user_output(f"Started quick task {task.id} '{task.name}'", color="green")
    return 0


def run_add_tag(args: argparse.Namespace, state: StateManager) -> int:
    tag = state.create_tag(args.name, args.link)
    user_output(f"Created tag {tag.id} '{tag.name}'", color="green")
    return 0


def run_delete_tag(args: argparse.Namespace, state: StateManager) -> int:
    state.delete_tag(args.tag_id)
    tag = state.get_tag(args.tag_id)
    user_output(f"Deleted tag {tag.id}, detached from {len(tag.restore_task_ids)} task(s)")
    return 0


def run_restore_tag(args: argparse.Namespace, state: StateManager) -> int:
    tag = state.restore_tag(args.tag_id)
    user_output(f"Restored tag {tag.id} '{tag.name}'")
    return 0


def run_purge_tag(args: argparse.Namespace, state: StateManager) -> int:
    state.purge_tag(args.tag_id)
    user_output(f"Purged tag {args.tag_id} and its sessions", color="red")
    return 0


def run_export(args: argparse.Namespace, state: StateManager) -> int:
    directory = args.directory or get_backup_dir()
    written = state.export_backup(directory)
    for path in written:
        print(path)
    print(f"Exported {len(written)} files to {directory}", file=sys.stderr)
    return 0


def run_import(args: argparse.Namespace, state: StateManager) -> int:
    if args.files:
        imported = import_from_files(args.files)
    else:
        imported = import_from_folder(args.folder or get_backup_dir())
    state.import_backup(imported)
    user_output(
        f"Imported {len(imported.snapshot.tasks)} tasks, {len(imported.snapshot.tags)} tags, "
        f"{len(imported.snapshot.task_sessions)} sessions",
        color="green",
    )
    return 0


def run_validate(args: argparse.Namespace) -> int:
    """Execute the validate subcommand."""
    errors, warnings = validate_config(config_module.config)
    for warning in warnings:
        print(f"  warning: {warning}")
    if errors:
        print("Configuration errors found:")
        for error in errors:
            print(f"  - {error}")
        return 1

    snapshot_path = args.snapshot or get_snapshot_path()
    try:
        load_snapshot(snapshot_path)
    except TrackerError as e:
        print(f"Snapshot {snapshot_path} is not usable: {e}")
        return 1

    print("Configuration is valid")
    return 0


COMMANDS = {
    "status": run_status,
    "sessions": run_sessions,
    "add-task": run_add_task,
    "edit-task": run_edit_task,
    "toggle": run_toggle,
    "set-tags": run_set_tags,
    "rename-task": run_rename_task,
    "delete-task": run_delete_task,
    "restore-task": run_restore_task,
    "purge-task": run_purge_task,
    "quick": run_quick,
    "add-tag": run_add_tag,
    "rename-tag": run_rename_tag,
    "delete-tag": run_delete_tag,
    "restore-tag": run_restore_tag,
    "purge-tag": run_purge_tag,
    "export": run_export,
    "import": run_import,
}

ARG_VALIDATORS = {
    "import": validate_import_args,
    "edit-task": validate_edit_task_args,
}


def main(argv=None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(argv)

    # Default to 'status' if no subcommand specified
    if not args.subcommand:
        args = parser.parse_args(argv + ["status"])
    subcommand = args.subcommand

    if args.config:
        if not args.config.exists():
            print(f"Error: Config file not found: {args.config}", file=sys.stderr)
            return 1
        load_custom_config(args.config)

    configure_logging(args, subcommand)

    try:
        if subcommand == "validate":
            return run_validate(args)

        errors, warnings = validate_config(config_module.config)
        log_validation_results(errors, warnings)
        if errors:
            raise ConfigValidationError("; ".join(errors))

        validator = ARG_VALIDATORS.get(subcommand)
        error = validator(args) if validator else None
        if error:
            print(error, file=sys.stderr)
            return 1

        state = load_state(args)
        try:
            return COMMANDS[subcommand](args, state)
        finally:
            state.flush()

    except KeyboardInterrupt:
        print("\nExiting...")
        return 0
    except (TrackerError, ConfigValidationError) as e:
        logger.error(f"{subcommand} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error in {subcommand}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
