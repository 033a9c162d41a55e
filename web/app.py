#!/usr/bin/env python3
from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st

from stock_audit.aggregation import CategoryStats
from stock_audit.branches import BranchDirectory, load_directory
from stock_audit.classifiers import Category
from stock_audit.config import Settings, load_settings
from stock_audit.customers import ImportResult, JsonCustomerStore, import_customers
from stock_audit.errors import StockAuditError, UploadTooLargeError
from stock_audit.exporter import (
    build_email_draft_url,
    build_export_rows,
    format_percentage,
    load_email_template,
    render_email_html,
    write_snapshot_workbook,
)
from stock_audit.loader import ALL_FORMATS, load_sheet
from stock_audit.pipeline import Upload, check_upload_size, process_files
from stock_audit.snapshot import ComplianceSnapshot
from stock_audit.store import SnapshotStore
from stock_audit.targets import TargetCheck, WeekTargets, check_snapshot, load_targets

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
UPLOAD_TYPES = [ext.lstrip(".") for ext in sorted(ALL_FORMATS)]


@st.cache_resource(show_spinner=False)
def load_runtime() -> tuple[Settings, BranchDirectory]:
    settings = load_settings()
    return settings, load_directory(settings.branches_path)


def ensure_state() -> None:
    st.session_state.setdefault("snapshot", None)
    st.session_state.setdefault("messages", [])


def collect_sources(uploads, settings: Settings) -> tuple[list[Upload], list[str]]:
    """
    Turn streamlit uploads into Uploads.

    Oversized files are reported and left out; the rest are still processed.
    """
    sources: list[Upload] = []
    errors: list[str] = []
    for upload in uploads or []:
        try:
            check_upload_size(upload.size, upload.name, settings.max_upload_bytes)
        except UploadTooLargeError as exc:
            logger.warning("Rejected upload %s: %s", upload.name, exc)
            errors.append(str(exc))
            continue
        sources.append(Upload(filename=upload.name, content=upload.getvalue()))
    return sources, errors


def branch_frame(stats: CategoryStats) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"Branch": item.branch, "Percentage": format_percentage(item.percentage)}
            for item in stats.branch_percentages
        ],
        columns=["Branch", "Percentage"],
    )


def export_frame(snapshot: ComplianceSnapshot, directory: BranchDirectory) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"Branch": row["branch"], "IRA": format_percentage(row["ira"]), "Cycle Count": format_percentage(row["cc"])}
            for row in build_export_rows(snapshot, directory)
        ],
        columns=["Branch", "IRA", "Cycle Count"],
    )


def workbook_bytes(
    snapshot: ComplianceSnapshot,
    directory: BranchDirectory,
    targets: Optional[WeekTargets] = None,
) -> bytes:
    with tempfile.TemporaryDirectory(prefix="stock-audit-export-") as tmpdir:
        path = write_snapshot_workbook(snapshot, Path(tmpdir) / "snapshot.xlsx", directory, targets)
        return path.read_bytes()


def run_customer_import(upload, settings: Settings, directory: BranchDirectory) -> ImportResult:
    check_upload_size(upload.size, upload.name, settings.max_upload_bytes)
    sheet = load_sheet(upload.getvalue(), filename=upload.name)
    return import_customers(
        sheet,
        JsonCustomerStore(settings.customers_path),
        directory,
        batch_size=settings.import_batch_size,
        time_budget_seconds=settings.import_budget_seconds,
    )


def target_delta(check: Optional[TargetCheck]) -> Optional[str]:
    if check is None:
        return None
    return f"{format_percentage(check.actual - check.target)} vs {check.week} target {format_percentage(check.target)}%"


def render_category(title: str, stats: CategoryStats, check: Optional[TargetCheck] = None) -> None:
    st.markdown(f"#### {title}")
    metrics = st.columns(3)
    metrics[0].metric("Compliance", f"{format_percentage(stats.percentage)}%", delta=target_delta(check))
    metrics[1].metric("Counted", stats.counted)
    metrics[2].metric("Not counted", stats.not_counted)
    frame = branch_frame(stats)
    if frame.empty:
        st.info("No rows could be matched to a known branch.")
    else:
        st.dataframe(frame, hide_index=True, width="stretch")


def render_snapshot(snapshot: ComplianceSnapshot, directory: BranchDirectory, settings: Settings) -> None:
    targets = load_targets(settings.targets_path)
    template = load_email_template(settings.email_template_path, missing_ok=True)
    checks = check_snapshot(snapshot, targets)
    st.subheader(snapshot.name)
    st.caption(f"Snapshot {snapshot.id} created {snapshot.date.isoformat()}")
    left, right = st.columns(2)
    with left:
        render_category("IRA", snapshot.ira_stats, checks.get(Category.IRA))
    with right:
        render_category("Cycle Count", snapshot.cc_stats, checks.get(Category.CC))

    with st.expander("Report preview"):
        st.dataframe(export_frame(snapshot, directory), hide_index=True, width="stretch")
    download_col, draft_col = st.columns(2)
    download_col.download_button(
        "Download report",
        data=workbook_bytes(snapshot, directory, targets),
        file_name=f"{snapshot.name}.xlsx",
        mime=XLSX_MIME,
        width="stretch",
        key=f"download_{snapshot.id}",
    )
    draft_col.link_button(
        "Open Outlook draft",
        build_email_draft_url(snapshot, directory, template),
        width="stretch",
    )
    with st.expander("E-mail body"):
        st.code(
            render_email_html(
                snapshot,
                directory,
                title=template.title,
                intro=template.intro,
                footer=template.footer,
            ),
            language="html",
        )


def render_history(store: SnapshotStore, directory: BranchDirectory, settings: Settings) -> None:
    entries = store.list()
    if not entries:
        st.info("No snapshots saved yet.")
        return
    frame = pd.DataFrame(
        [
            {
                "Name": entry.get("name"),
                "IRA": format_percentage(entry.get("iraPercentage")),
                "Cycle Count": format_percentage(entry.get("ccPercentage")),
                "ID": entry.get("id"),
            }
            for entry in reversed(entries)
        ]
    )
    st.dataframe(frame, hide_index=True, width="stretch")
    selected: Optional[str] = st.selectbox("Open snapshot", options=[""] + list(frame["ID"]), key="history_select")
    if not selected:
        return
    render_snapshot(store.get(selected), directory, settings)
    if st.button("Delete snapshot", key=f"delete_{selected}"):
        store.delete(selected)
        st.rerun()


def render_customer_panel(settings: Settings, directory: BranchDirectory) -> None:
    upload = st.file_uploader("Customer master", type=UPLOAD_TYPES, key="customers_input")
    if upload is None or not st.button("Import customers", type="primary"):
        return
    try:
        result = run_customer_import(upload, settings, directory)
    except (StockAuditError, ValueError) as exc:
        st.error(str(exc))
        return
    metrics = st.columns(4)
    metrics[0].metric("Imported", result.succeeded_count)
    metrics[1].metric("Invalid rows", result.invalid_rows)
    metrics[2].metric("Duplicates", result.duplicate_rows)
    metrics[3].metric("Without branch", result.unresolved_branch_rows)
    if result.timed_out:
        st.warning(f"Time budget exceeded: {result.processed_rows} of {result.valid_rows} rows processed.")
    for batch in result.failed_batches:
        st.error(f"Batch {batch.index} ({batch.size} rows) failed: {batch.error}")
    if not result.partial:
        st.success("Customer import finished.")


def main() -> None:
    st.set_page_config(page_title="stock-audit", layout="wide", initial_sidebar_state="collapsed")
    ensure_state()
    settings, directory = load_runtime()
    store = SnapshotStore(settings.snapshots_dir)

    st.title("stock-audit")
    st.caption("Upload the branch IRA and Cycle Count exports. File names must contain 'IRA' or 'CC'.")

    upload_tab, history_tab, customers_tab = st.tabs(["Upload", "Snapshots", "Customers"])

    with upload_tab:
        uploads = st.file_uploader("IRA / CC files", type=UPLOAD_TYPES, accept_multiple_files=True, key="uploads_input")
        st.caption(f"Files above {settings.max_upload_mb:g} MB are rejected.")
        if st.button("Process", type="primary", width="stretch", disabled=not uploads):
            sources, errors = collect_sources(uploads, settings)
            st.session_state["messages"] = errors
            st.session_state["snapshot"] = None
            if sources:
                try:
                    snapshot = process_files(sources, directory, settings)
                except (StockAuditError, ValueError, FileNotFoundError) as exc:
                    logger.warning("Processing failed: %s", exc)
                    st.session_state["messages"].append(str(exc))
                else:
                    store.save(snapshot)
                    st.session_state["snapshot"] = snapshot
        for message in st.session_state["messages"]:
            st.error(message)
        if st.session_state["snapshot"] is not None:
            render_snapshot(st.session_state["snapshot"], directory, settings)

    with history_tab:
        render_history(store, directory, settings)

    with customers_tab:
        render_customer_panel(settings, directory)


if __name__ == "__main__":
    main()
