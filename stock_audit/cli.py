from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from stock_audit import __version__ as TOOL_VERSION
from stock_audit.branches import BranchDirectory, load_directory
from stock_audit.classifiers import Category
from stock_audit.config import Settings, load_settings
from stock_audit.contracts import build_run_summary
from stock_audit.customers import JsonCustomerStore, import_customers
from stock_audit.errors import (
    BranchDirectoryError,
    NoCategoryFileError,
    SnapshotNotFoundError,
    UploadTooLargeError,
)
from stock_audit.exporter import (
    build_email_draft_url,
    format_percentage,
    load_email_template,
    render_email_html,
    write_snapshot_workbook,
)
from stock_audit.loader import load_sheet
from stock_audit.pipeline import check_upload_size, process_files
from stock_audit.snapshot import ComplianceSnapshot
from stock_audit.store import SnapshotStore
from stock_audit.targets import WEEKS, TargetCheck, check_snapshot, load_targets, save_targets

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_NO_CATEGORY = 3
EXIT_TOO_LARGE = 4
EXIT_PARTIAL = 6

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class StockAuditArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False) or getattr(args, "json", False):
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, UploadTooLargeError):
        return EXIT_TOO_LARGE
    if isinstance(exc, NoCategoryFileError):
        return EXIT_NO_CATEGORY
    if isinstance(exc, (SnapshotNotFoundError, BranchDirectoryError, FileNotFoundError)):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def resolve_settings() -> Settings:
    try:
        return load_settings()
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def resolve_directory(args: argparse.Namespace, settings: Settings) -> BranchDirectory:
    path = getattr(args, "branches", None) or settings.branches_path
    return load_directory(path)


def resolve_store(args: argparse.Namespace, settings: Settings) -> SnapshotStore:
    root = getattr(args, "store", None) or settings.snapshots_dir
    return SnapshotStore(root)


def render_stats_text(snapshot: ComplianceSnapshot, checks: dict[Category, TargetCheck] | None = None) -> str:
    checks = checks or {}
    lines = [f"Snapshot {snapshot.name} [{snapshot.id}]"]
    for label, category, stats in (
        ("IRA", Category.IRA, snapshot.ira_stats),
        ("Cycle Count", Category.CC, snapshot.cc_stats),
    ):
        lines.append(
            f"  {label}: {format_percentage(stats.percentage)}% "
            f"({stats.counted} counted / {stats.total} rows)"
        )
        check = checks.get(category)
        if check is not None:
            status = "met" if check.met else "below target"
            lines.append(f"    Target {check.week}: {format_percentage(check.target)}% ({status})")
        for item in stats.branch_percentages:
            lines.append(f"    {item.branch}: {format_percentage(item.percentage)}%")
    return "\n".join(lines) + "\n"


def snapshot_summary(snapshot: ComplianceSnapshot, inputs: list[str], output_path: str | None) -> dict[str, Any]:
    return build_run_summary(
        tool="stock-audit",
        script="process",
        inputs=inputs,
        output_path=output_path,
        metrics={
            "ira_rows": snapshot.ira_stats.total,
            "ira_percentage": snapshot.ira_stats.percentage,
            "cc_rows": snapshot.cc_stats.total,
            "cc_percentage": snapshot.cc_stats.percentage,
        },
    )


def targets_payload(checks: dict[Category, TargetCheck]) -> dict[str, Any]:
    return {category.value: check.to_dict() for category, check in checks.items()}


def parse_date_arg(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = StockAuditArgumentParser(
        prog="stock-audit",
        description="IRA and Cycle Count compliance from branch spreadsheet exports.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Ingest IRA/CC files and build a snapshot.")
    process.add_argument("inputs", nargs="+", help="Input files; the file name must contain 'ira' or 'cc'")
    process.add_argument("--branches", help="Branch directory JSON (overrides STOCK_AUDIT_BRANCHES)")
    process.add_argument("--store", help="Snapshot directory (defaults to $STOCK_AUDIT_HOME/snapshots)")
    process.add_argument("--no-save", dest="save", action="store_false", help="Do not persist the snapshot")
    process.add_argument("--snapshot-id", help="Use this id instead of a generated one")
    process.add_argument("--export", dest="export_path", help="Also write the xlsx report here")
    process.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    process.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    process.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    snapshots = subparsers.add_parser("snapshots", help="Inspect saved snapshots.")
    snapshots.add_argument("--store", help="Snapshot directory (defaults to $STOCK_AUDIT_HOME/snapshots)")
    snapshots_sub = snapshots.add_subparsers(dest="snapshots_command", required=True)
    snap_list = snapshots_sub.add_parser("list", help="List saved snapshots.")
    snap_list.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    snap_show = snapshots_sub.add_parser("show", help="Show one snapshot.")
    snap_show.add_argument("snapshot_id")
    snap_show.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    snap_delete = snapshots_sub.add_parser("delete", help="Delete one snapshot.")
    snap_delete.add_argument("snapshot_id")
    snap_export = snapshots_sub.add_parser("export", help="Export a snapshot as xlsx and/or e-mail HTML.")
    snap_export.add_argument("snapshot_id")
    snap_export.add_argument("--output", help="xlsx output path (default: <name>.xlsx)")
    snap_export.add_argument("--email", dest="email_path", help="Also write the HTML e-mail body here")
    snap_export.add_argument(
        "--email-template",
        help="E-mail template JSON (subject/title/intro/footer); prints an Outlook draft link",
    )
    snap_export.add_argument("--branches", help="Branch directory JSON (overrides STOCK_AUDIT_BRANCHES)")
    snap_backup = snapshots_sub.add_parser("export-all", help="Write every saved snapshot to one JSON backup.")
    snap_backup.add_argument("--output", default="snapshots-backup.json", help="Backup path (default: snapshots-backup.json)")
    for sub in (snap_list, snap_show, snap_delete, snap_export, snap_backup):
        sub.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
        sub.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    customers = subparsers.add_parser("customers", help="Customer master operations.")
    customers_sub = customers.add_subparsers(dest="customers_command", required=True)
    cust_import = customers_sub.add_parser("import", help="Import a customer master spreadsheet.")
    cust_import.add_argument("input", help="Customer spreadsheet")
    cust_import.add_argument("--customers", dest="customers_path", help="Customer JSON store path")
    cust_import.add_argument("--branches", help="Branch directory JSON (overrides STOCK_AUDIT_BRANCHES)")
    cust_import.add_argument("--batch-size", type=int, help="Rows per write batch")
    cust_import.add_argument("--budget", type=float, help="Wall-clock budget in seconds")
    cust_import.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    cust_import.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    cust_import.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    branches = subparsers.add_parser("branches", help="Print the canonical branch directory.")
    branches.add_argument("--branches", help="Branch directory JSON (overrides STOCK_AUDIT_BRANCHES)")
    branches.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    targets = subparsers.add_parser("targets", help="Weekly compliance targets per category.")
    targets.add_argument("--targets", dest="targets_path", help="Targets JSON (defaults to $STOCK_AUDIT_HOME/week-targets.json)")
    targets_sub = targets.add_subparsers(dest="targets_command", required=True)
    targets_show = targets_sub.add_parser("show", help="Print the targets.")
    targets_show.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    targets_set = targets_sub.add_parser("set", help="Set one week's target.")
    targets_set.add_argument("category", choices=[category.value for category in Category])
    targets_set.add_argument("week", type=int, choices=range(1, len(WEEKS) + 1), help="Week number, 1-4")
    targets_set.add_argument("target", type=float, help="Target percentage, 0-100")
    targets_set.add_argument("--start", type=parse_date_arg, help="Window start date, YYYY-MM-DD")
    targets_set.add_argument("--end", type=parse_date_arg, help="Window end date, YYYY-MM-DD")
    targets_set.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_process(args: argparse.Namespace) -> int:
    try:
        settings = resolve_settings()
        directory = resolve_directory(args, settings)
        targets = load_targets(settings.targets_path)
        sources = [Path(item) for item in args.inputs]
        snapshot = process_files(
            sources,
            directory,
            settings,
            snapshot_id=args.snapshot_id,
        )
        checks = check_snapshot(snapshot, targets)
        saved_path = None
        if args.save:
            saved_path = resolve_store(args, settings).save(snapshot)
        export_path = None
        if args.export_path:
            export_path = write_snapshot_workbook(snapshot, args.export_path, directory, targets)

        if args.json:
            payload = snapshot.to_dict()
            payload["targets"] = targets_payload(checks)
            payload["run_summary"] = snapshot_summary(
                snapshot, list(args.inputs), str(saved_path) if saved_path else None
            )
            if export_path:
                payload["outputs"] = {"workbook": str(export_path)}
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_stats_text(snapshot, checks).rstrip(), quiet=args.quiet)
            if saved_path:
                emit_human(f"Snapshot saved: {saved_path}", quiet=args.quiet)
            if export_path:
                emit_human(f"Report written: {export_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_snapshots(args: argparse.Namespace) -> int:
    try:
        settings = resolve_settings()
        store = resolve_store(args, settings)
        command = args.snapshots_command
        if command == "list":
            entries = store.list()
            if args.json:
                maybe_emit_json_stdout(entries, True)
            elif not entries:
                print("No snapshots saved.")
            else:
                for entry in entries:
                    print(
                        f"{entry['id']}  {entry['name']}  IRA {format_percentage(entry.get('iraPercentage'))}%"
                        f"  CC {format_percentage(entry.get('ccPercentage'))}%"
                    )
            return EXIT_SUCCESS
        if command == "show":
            snapshot = store.get(args.snapshot_id)
            checks = check_snapshot(snapshot, load_targets(settings.targets_path))
            if args.json:
                payload = snapshot.to_dict()
                payload["targets"] = targets_payload(checks)
                maybe_emit_json_stdout(payload, True)
            else:
                print(render_stats_text(snapshot, checks).rstrip())
            return EXIT_SUCCESS
        if command == "delete":
            store.delete(args.snapshot_id)
            emit_human(f"Snapshot deleted: {args.snapshot_id}", quiet=args.quiet)
            return EXIT_SUCCESS
        if command == "export":
            snapshot = store.get(args.snapshot_id)
            directory = resolve_directory(args, settings)
            if args.email_template:
                template = load_email_template(args.email_template)
            else:
                template = load_email_template(settings.email_template_path, missing_ok=True)
            output_path = Path(args.output) if args.output else Path.cwd() / f"{snapshot.name}.xlsx"
            write_snapshot_workbook(snapshot, output_path, directory, load_targets(settings.targets_path))
            emit_human(f"Report written: {output_path}", quiet=args.quiet)
            if args.email_path:
                email_path = Path(args.email_path)
                email_path.parent.mkdir(parents=True, exist_ok=True)
                body = render_email_html(
                    snapshot,
                    directory,
                    title=template.title,
                    intro=template.intro,
                    footer=template.footer,
                )
                email_path.write_text(body, encoding="utf-8")
                emit_human(f"E-mail body written: {email_path}", quiet=args.quiet)
            if args.email_template:
                print(build_email_draft_url(snapshot, directory, template))
            return EXIT_SUCCESS
        if command == "export-all":
            snapshots = store.export_all()
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(json_dumps([snapshot.to_dict() for snapshot in snapshots]), encoding="utf-8")
            emit_human(f"Backup of {len(snapshots)} snapshots written: {output_path}", quiet=args.quiet)
            return EXIT_SUCCESS
        raise CliError(f"Unknown snapshots command: {command}", EXIT_COMMAND_ERROR)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_targets(args: argparse.Namespace) -> int:
    try:
        path = Path(args.targets_path) if args.targets_path else resolve_settings().targets_path
        targets = load_targets(path)
        if args.targets_command == "show":
            if args.json:
                maybe_emit_json_stdout(targets.to_dict(), True)
            else:
                for category in Category:
                    for week, target in targets.weeks(category).items():
                        window = ""
                        if target.start_date and target.end_date:
                            window = f"  {target.start_date.isoformat()}..{target.end_date.isoformat()}"
                        print(f"{category.value}  {week}  {format_percentage(target.target)}%{window}")
            return EXIT_SUCCESS
        if args.targets_command == "set":
            week = f"week{args.week}"
            try:
                updated = targets.with_week(
                    args.category, week, args.target, start_date=args.start, end_date=args.end
                )
            except ValueError as exc:
                raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
            save_targets(updated, path)
            emit_human(
                f"Target {args.category} {week} set to {format_percentage(args.target)}%", quiet=args.quiet
            )
            return EXIT_SUCCESS
        raise CliError(f"Unknown targets command: {args.targets_command}", EXIT_COMMAND_ERROR)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_customers_import(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = resolve_settings()
        directory = resolve_directory(args, settings)
        check_upload_size(input_path.stat().st_size, input_path.name, settings.max_upload_bytes)
        sheet = load_sheet(input_path)
        store = JsonCustomerStore(args.customers_path or settings.customers_path)
        result = import_customers(
            sheet,
            store,
            directory,
            batch_size=args.batch_size or settings.import_batch_size,
            time_budget_seconds=args.budget or settings.import_budget_seconds,
        )
        if args.json:
            payload = result.to_dict()
            payload["run_summary"] = build_run_summary(
                tool="stock-audit",
                script="customers-import",
                inputs=[str(input_path)],
                status="partial" if result.partial else "ok",
                output_path=str(store.path),
                metrics={"succeeded": result.succeeded_count, "total_rows": result.total_rows},
                warnings=[batch.error for batch in result.failed_batches],
            )
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(
                f"Imported {result.succeeded_count} of {result.valid_rows} customers "
                f"({result.invalid_rows} invalid, {result.duplicate_rows} duplicates)",
                quiet=args.quiet,
            )
            if result.timed_out:
                emit_human(
                    f"Time budget exceeded: {result.processed_rows} of {result.valid_rows} rows processed",
                    quiet=args.quiet,
                )
            for batch in result.failed_batches:
                emit_human(f"Batch {batch.index} ({batch.size} rows) failed: {batch.error}", quiet=args.quiet)
        return EXIT_PARTIAL if result.partial else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_branches(args: argparse.Namespace) -> int:
    try:
        directory = resolve_directory(args, resolve_settings())
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)
    if args.json:
        maybe_emit_json_stdout([{"code": b.code, "name": b.name_part} for b in directory], True)
    else:
        for branch in directory:
            print(branch.full_label)
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "process":
            return run_process(args)
        if args.command == "snapshots":
            return run_snapshots(args)
        if args.command == "customers":
            if args.customers_command == "import":
                return run_customers_import(args)
        if args.command == "branches":
            return run_branches(args)
        if args.command == "targets":
            return run_targets(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
