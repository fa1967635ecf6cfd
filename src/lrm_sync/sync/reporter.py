"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_pull_report`` -- post-pull summary.
- ``format_push_report`` -- post-push summary.
- ``format_conflict`` -- unified diff of one conflict for review.
- ``report_to_json`` -- structured dict for JSON output.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ConfigConflict, EntryConflict, PullReport, PushReport

from .models import SyncStatus

_STATUS_LABELS = {
    SyncStatus.APPLIED: "applied",
    SyncStatus.UP_TO_DATE: "already up to date",
    SyncStatus.CONFLICTS: "stopped on conflicts",
    SyncStatus.ABORTED: "aborted",
    SyncStatus.CANCELLED: "cancelled",
    SyncStatus.FAILED: "FAILED",
    SyncStatus.DRY_RUN: "dry run, nothing written",
}

# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def _common_footer(
    lines: list[str], report: PullReport | PushReport
) -> None:
    if report.state_was_corrupted:
        lines.append(
            "Note: sync state was unreadable; treated as a first sync."
        )
    if report.state_migrated:
        lines.append("Note: sync state was migrated from version 1.")
    if report.warnings:
        lines.append("Warnings:")
        for warning in report.warnings:
            lines.append(f"  {warning}")
    if report.error:
        lines.append(f"Error: {report.error}")


def format_pull_report(report: PullReport) -> str:
    """Format a pull report as human-readable text.

    Args:
        report: The completed pull report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [f"Pull {_STATUS_LABELS[report.status]}"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    verb = "would write" if report.dry_run else "written"
    lines.append(
        f"Entries: {report.written} {verb}, {report.deleted} deleted, "
        f"{report.auto_merged} auto-merged, {report.unchanged} unchanged"
    )
    if report.config_written or report.config_deleted:
        lines.append(
            f"Config: {report.config_written} properties updated, "
            f"{report.config_deleted} removed"
        )
    if report.first_pull:
        lines.append("First pull: remote content taken as-is.")
    if report.files_written:
        lines.append("Files:")
        for path in report.files_written:
            lines.append(f"  {path}")
    if report.backup_name:
        state = "restored from" if report.restored else "backup"
        lines.append(f"Backup: {state} {report.backup_name}")

    if report.conflicts or report.config_conflicts:
        lines.append("")
        lines.append(
            f"Conflicts ({len(report.conflicts) + len(report.config_conflicts)}):"
        )
        for conflict in report.conflicts:
            lines.append(
                f"  {conflict.key} [{conflict.lang}]: {conflict.type.value}"
            )
        for conflict in report.config_conflicts:
            lines.append(f"  config {conflict.path}: {conflict.type.value}")

    _common_footer(lines, report)
    return "\n".join(lines).rstrip()


def format_push_report(report: PushReport) -> str:
    """Format a push report as human-readable text."""
    lines: list[str] = [f"Push {_STATUS_LABELS[report.status]}"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")
    lines.append(
        f"Local changes: {report.additions} added, "
        f"{report.modifications} modified, {report.deletions} deleted"
    )
    if report.config_changes or report.config_deletions:
        lines.append(
            f"Config changes: {report.config_changes} changed, "
            f"{report.config_deletions} removed"
        )
    if report.status == SyncStatus.APPLIED:
        lines.append(
            f"Server applied {report.applied}, deleted {report.deleted}"
        )
    if report.conflicts:
        lines.append("")
        lines.append(f"Rejected with {len(report.conflicts)} conflicts:")
        for conflict in report.conflicts:
            lines.append(
                f"  {conflict.key} [{conflict.lang}]: {conflict.type.value}"
            )
        lines.append("Pull and resolve before pushing again.")
    _common_footer(lines, report)
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict(conflict: EntryConflict | ConfigConflict) -> str:
    """Format a single conflict for review.

    Shows a unified diff between the local and remote value.  A missing
    side is rendered as ``(deleted)``.

    Args:
        conflict: An entry or config conflict.

    Returns:
        Multi-line formatted string.
    """
    if hasattr(conflict, "path"):
        title = f"config {conflict.path}"
        updated_at = None
    else:
        title = f"{conflict.key} [{conflict.lang}]"
        updated_at = conflict.remote_updated_at

    lines: list[str] = [f"Conflict: {title} ({conflict.type.value})"]
    if updated_at:
        lines.append(f"Remote updated at: {updated_at}")
    lines.append("")

    local_text = (
        conflict.local_value if conflict.local_value is not None else ""
    )
    remote_text = (
        conflict.remote_value if conflict.remote_value is not None else ""
    )
    if conflict.local_value is None:
        lines.append("Local: (deleted)")
    if conflict.remote_value is None:
        lines.append("Remote: (deleted)")

    diff = "\n".join(
        difflib.unified_diff(
            local_text.splitlines(),
            remote_text.splitlines(),
            fromfile=f"local: {title}",
            tofile=f"remote: {title}",
            lineterm="",
        )
    )
    if diff:
        lines.append(diff.rstrip())
    elif conflict.local_value is not None and conflict.remote_value is not None:
        lines.append("(values are equal; comments or plural forms differ)")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: PullReport | PushReport) -> dict:
    """Convert a pull or push report to a JSON-serialisable dict."""
    data = report.model_dump(mode="json")
    data["succeeded"] = report.succeeded
    return data
