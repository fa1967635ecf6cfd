"""Sync engine that orchestrates pull and push for one project.

The ``SyncEngine`` ties together the extractor, state store, mergers,
resolver, backup manager and regenerator.  A pull:

1. Reads local entries and config properties.
2. Loads the baseline (migrating version 1 state when needed).
3. Fetches every remote entry through the API client.
4. Merges entries and config three ways against the baseline.
5. Applies caller resolutions, then the policy resolver.
6. Snapshots every file it may touch into a pull backup.
7. Regenerates resource files, rewrites the config file and saves the
   new baseline.

Any failure in step 7 restores the backup, so a run either applies fully
or leaves the local tree byte-for-byte as it was.  Failures before step 6
never touch disk.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from lrm_sync.config_schema import SyncConfig
from lrm_sync.core.client import SyncApiClient
from lrm_sync.errors import (
    BackupError,
    RemoteApiError,
    SyncAbortedError,
    SyncCancelledError,
)
from lrm_sync.file_handler import atomic_write_text
from lrm_sync.sync.backend import LanguageInfo, ResourceBackend, create_backend
from lrm_sync.sync.backup import BackupInfo, BackupManager
from lrm_sync.sync.config_merger import (
    apply_config_changes,
    apply_config_resolutions,
    compute_config_push_changes,
    extract_config_properties,
    merge_config,
)
from lrm_sync.sync.extractor import LocalEntryExtractor
from lrm_sync.sync.merger import (
    apply_resolutions,
    compute_push_changes,
    index_local_entries,
    merge_entries,
)
from lrm_sync.sync.models import (
    ConfigChanges,
    ConfigMergeResult,
    ConfigProperty,
    ConflictResolution,
    LocalEntry,
    MergeResult,
    PullReport,
    PushReport,
    SyncState,
    SyncStatus,
)
from lrm_sync.sync.payload import (
    build_push_payload,
    parse_pull_payload,
    parse_push_response,
)
from lrm_sync.sync.regenerator import FileRegenerator
from lrm_sync.sync.resolver import (
    ConflictResolver,
    collect_resolutions,
    create_resolver,
)
from lrm_sync.sync.state import SyncStateStore, migrate_legacy_state

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_cancel(cancel_event: threading.Event | None, stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SyncCancelledError(f"Sync cancelled before {stage}")


@dataclass
class _LocalSnapshot:
    """Local entries, config properties and baseline read at run start."""

    languages: list[LanguageInfo]
    entries: list[LocalEntry]
    config_text: str | None
    config: dict[str, ConfigProperty]
    baseline: SyncState | None
    was_corrupted: bool
    migrated: bool


class SyncEngine:
    """Pull and push one project against the remote sync API.

    Args:
        client: API client (anything with ``pull_all`` and ``push``).
        settings: Local sync behaviour.
        project_dir: Project root; all configured paths are relative to it.
        backend: Resource backend; built from ``settings.backend`` when
            omitted.
        resolver: Conflict policy; built from
            ``settings.conflict_strategy`` when omitted.
    """

    def __init__(
        self,
        client: SyncApiClient,
        settings: SyncConfig,
        project_dir: Path,
        backend: ResourceBackend | None = None,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.project_dir = Path(project_dir)

        self.backend = backend or create_backend(
            settings.backend, settings.default_language
        )
        self.resources_dir = self.project_dir / settings.resources_dir
        self.config_path = self.project_dir / settings.config_file
        self.state_store = SyncStateStore(self.project_dir, settings.state_dir)
        self.backup_manager = BackupManager(
            self.project_dir, settings.backup_dir, settings.backup_retention
        )
        self.extractor = LocalEntryExtractor(self.backend, self.resources_dir)
        self.regenerator = FileRegenerator(
            self.backend, self.resources_dir, settings.default_language
        )
        self.resolver = (
            resolver
            if resolver is not None
            else create_resolver(settings.conflict_strategy)
        )

    # ------------------------------------------------------------------
    # Local snapshot
    # ------------------------------------------------------------------

    def _read_local(self) -> _LocalSnapshot:
        """Read local files and the baseline.

        Raises:
            OSError, ValueError: If a resource or config file is unreadable.
        """
        languages = self.extractor.languages()
        entries = self.extractor.extract_entries(languages)

        config_text: str | None = None
        config: dict[str, ConfigProperty] = {}
        if self.settings.sync_config and self.config_path.is_file():
            config_text = self.config_path.read_text(encoding="utf-8-sig")
            config = extract_config_properties(config_text)

        loaded = self.state_store.load()
        baseline = loaded.state
        migrated = False
        if loaded.needs_migration and loaded.legacy is not None:
            baseline = migrate_legacy_state(
                loaded.legacy,
                self.extractor.extract_by_file(self.project_dir, languages),
                config_text,
            )
            migrated = True
        elif loaded.was_corrupted:
            logger.warning(
                "Sync state is corrupted; treating this run as a first sync"
            )

        return _LocalSnapshot(
            languages=languages,
            entries=entries,
            config_text=config_text,
            config=config,
            baseline=baseline,
            was_corrupted=loaded.was_corrupted,
            migrated=migrated,
        )

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(
        self,
        resolutions: list[ConflictResolution] | None = None,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> PullReport:
        """Pull remote changes into the local project.

        Args:
            resolutions: Decisions for conflicts reported by an earlier
                run.  Conflicts they do not cover go to the policy
                resolver.
            dry_run: If ``True``, merge and report without writing.
            cancel_event: Checked before each network call and before the
                backup; ignored once the backup is being written.

        Returns:
            A ``PullReport``.  Status ``CONFLICTS`` carries the conflicts
            the caller must resolve before pulling again.
        """
        started_at = _now()

        def report(status: SyncStatus, **fields) -> PullReport:
            return PullReport(
                status=status,
                dry_run=dry_run,
                started_at=started_at,
                completed_at=_now(),
                **fields,
            )

        try:
            _check_cancel(cancel_event, "reading local files")
            try:
                local = self._read_local()
            except (OSError, ValueError) as e:
                logger.error("Cannot read local resources: %s", e)
                return report(
                    SyncStatus.FAILED,
                    error=f"Cannot read local resources: {e}",
                )
            flags = {
                "state_was_corrupted": local.was_corrupted,
                "state_migrated": local.migrated,
                "first_pull": local.baseline is None,
            }

            _check_cancel(cancel_event, "fetching remote entries")
            try:
                pulled = parse_pull_payload(self.client.pull_all())
            except RemoteApiError as e:
                logger.error("Pull failed: %s", e)
                return report(SyncStatus.FAILED, error=str(e), **flags)

            merge = merge_entries(
                local.entries, pulled.entries, local.baseline
            )
            config_merge = self._merge_config(local, pulled.config)
            warnings = tuple(dict.fromkeys(pulled.warnings + merge.warnings))

            try:
                merge, config_merge = self._resolve(
                    merge, config_merge, local, resolutions or []
                )
            except SyncAbortedError as e:
                logger.warning("%s", e)
                return report(
                    SyncStatus.ABORTED,
                    error=str(e),
                    warnings=warnings,
                    **flags,
                )

            counts = {
                "written": len(merge.to_write),
                "deleted": len(merge.to_delete),
                "auto_merged": merge.auto_merged,
                "unchanged": merge.unchanged,
                "config_written": len(config_merge.to_write),
                "config_deleted": len(config_merge.to_delete),
                "warnings": warnings,
                **flags,
            }

            if merge.has_conflicts or config_merge.has_conflicts:
                logger.info(
                    "Pull stopped with %d entry and %d config conflicts",
                    len(merge.conflicts),
                    len(config_merge.conflicts),
                )
                return report(
                    SyncStatus.CONFLICTS,
                    conflicts=merge.conflicts,
                    config_conflicts=config_merge.conflicts,
                    **counts,
                )

            if dry_run:
                return report(SyncStatus.DRY_RUN, **counts)

            new_state = SyncState(
                entries=merge.new_hashes,
                config_properties=(
                    config_merge.new_hashes
                    if self.settings.sync_config
                    else (
                        local.baseline.config_properties
                        if local.baseline
                        else {}
                    )
                ),
            )

            if not merge.has_changes and not config_merge.has_changes:
                try:
                    self.state_store.save(new_state)
                except OSError as e:
                    logger.error("Failed to save sync state: %s", e)
                    return report(
                        SyncStatus.FAILED,
                        error=f"Failed to save sync state: {e}",
                        **counts,
                    )
                return report(SyncStatus.UP_TO_DATE, **counts)

            _check_cancel(cancel_event, "creating the backup")
        except SyncCancelledError as e:
            logger.info("%s", e)
            return report(SyncStatus.CANCELLED, error=str(e))

        return self._apply_pull(
            merge, config_merge, local, new_state, counts, report
        )

    def _merge_config(
        self,
        local: _LocalSnapshot,
        remote: dict[str, ConfigProperty] | None,
    ) -> ConfigMergeResult:
        if not self.settings.sync_config:
            return ConfigMergeResult()
        baseline = (
            local.baseline.config_properties if local.baseline else None
        )
        return merge_config(local.config, remote, baseline)

    def _resolve(
        self,
        merge: MergeResult,
        config_merge: ConfigMergeResult,
        local: _LocalSnapshot,
        resolutions: list[ConflictResolution],
    ) -> tuple[MergeResult, ConfigMergeResult]:
        """Caller resolutions first, then the policy for what is left."""
        local_index = index_local_entries(local.entries)
        if resolutions:
            merge = apply_resolutions(merge, resolutions, local_index)
            config_merge = apply_config_resolutions(
                config_merge, resolutions, local.config
            )
        policy = collect_resolutions(
            self.resolver, (*merge.conflicts, *config_merge.conflicts)
        )
        if policy:
            merge = apply_resolutions(merge, policy, local_index)
            config_merge = apply_config_resolutions(
                config_merge, policy, local.config
            )
        return merge, config_merge

    def _apply_pull(
        self,
        merge: MergeResult,
        config_merge: ConfigMergeResult,
        local: _LocalSnapshot,
        new_state: SyncState,
        counts: dict,
        report,
    ) -> PullReport:
        """Back up, write, and persist; restore the backup on any failure."""
        planned = self.regenerator.planned_paths(
            merge.to_write, local.languages, merge.to_delete
        )
        if config_merge.has_changes:
            planned.append(self.config_path)
        planned.append(self.state_store.path)

        backup: BackupInfo | None = None
        if self.settings.backup_enabled:
            try:
                backup = self.backup_manager.create_backup(planned)
            except BackupError as e:
                logger.error("Backup failed; nothing was written: %s", e)
                return report(SyncStatus.FAILED, error=str(e), **counts)
        backup_name = backup.name if backup else None

        regen = self.regenerator.regenerate(
            merge.to_write, merge.to_delete, local.languages
        )
        error: str | None = None
        if not regen.success:
            error = f"Failed to write resource files: {regen.error}"
        else:
            try:
                if config_merge.has_changes:
                    atomic_write_text(
                        self.config_path,
                        apply_config_changes(
                            local.config_text,
                            config_merge.to_write,
                            config_merge.to_delete,
                        ),
                    )
                self.state_store.save(new_state)
            except (OSError, ValueError) as e:
                error = f"Failed to finish pull: {e}"

        if error is not None:
            logger.error("%s", error)
            restored = self._rollback(backup)
            if backup is not None and not restored:
                error += f"; restoring backup {backup_name} also failed"
            return report(
                SyncStatus.FAILED,
                error=error,
                backup_name=backup_name,
                restored=restored,
                files_written=regen.written_files,
                **counts,
            )

        if backup is not None:
            self.backup_manager.prune_backups()

        logger.info(
            "Pull applied: %d written, %d deleted, %d config properties",
            len(merge.to_write),
            len(merge.to_delete),
            len(config_merge.to_write) + len(config_merge.to_delete),
        )
        return report(
            SyncStatus.APPLIED,
            backup_name=backup_name,
            files_written=regen.written_files,
            **counts,
        )

    def _rollback(self, backup: BackupInfo | None) -> bool:
        if backup is None:
            logger.error("Backups are disabled; local files were not restored")
            return False
        try:
            self.backup_manager.restore_backup(backup.name)
        except BackupError as e:
            logger.error("Restore of %s failed: %s", backup.name, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(
        self,
        dry_run: bool = False,
        message: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PushReport:
        """Send local changes since the baseline to the remote store.

        The baseline is rebuilt from the server-returned hashes only when
        the server reports no conflicts.

        Args:
            dry_run: If ``True``, compute and report without sending.
            message: Optional change description sent with the push.
            cancel_event: Checked before the network call.

        Returns:
            A ``PushReport``.
        """
        started_at = _now()

        def report(status: SyncStatus, **fields) -> PushReport:
            return PushReport(
                status=status,
                dry_run=dry_run,
                started_at=started_at,
                completed_at=_now(),
                **fields,
            )

        try:
            local = self._read_local()
        except (OSError, ValueError) as e:
            logger.error("Cannot read local resources: %s", e)
            return report(
                SyncStatus.FAILED, error=f"Cannot read local resources: {e}"
            )

        baseline = local.baseline
        changes = compute_push_changes(local.entries, baseline)
        config_changes = (
            compute_config_push_changes(
                local.config, baseline.config_properties if baseline else None
            )
            if self.settings.sync_config
            else ConfigChanges()
        )
        counts = {
            "additions": len(changes.additions),
            "modifications": len(changes.modifications),
            "deletions": len(changes.deletions),
            "config_changes": len(config_changes.changes),
            "config_deletions": len(config_changes.deletions),
            "state_was_corrupted": local.was_corrupted,
            "state_migrated": local.migrated,
        }

        if changes.is_empty and not config_changes.has_changes:
            return report(SyncStatus.UP_TO_DATE, **counts)
        if dry_run:
            return report(SyncStatus.DRY_RUN, **counts)

        try:
            _check_cancel(cancel_event, "pushing")
        except SyncCancelledError as e:
            logger.info("%s", e)
            return report(SyncStatus.CANCELLED, error=str(e), **counts)

        try:
            response = parse_push_response(
                self.client.push(
                    build_push_payload(changes, config_changes, message)
                )
            )
        except RemoteApiError as e:
            logger.error("Push failed: %s", e)
            return report(SyncStatus.FAILED, error=str(e), **counts)

        result = {
            "applied": response.applied,
            "deleted": response.deleted,
            "config_applied": response.config_applied,
            **counts,
        }
        if response.conflicts:
            logger.info(
                "Server rejected push with %d conflicts; pull first",
                len(response.conflicts),
            )
            return report(
                SyncStatus.CONFLICTS, conflicts=response.conflicts, **result
            )

        entries = {
            key: dict(langs)
            for key, langs in (baseline.entries if baseline else {}).items()
        }
        for change in (*changes.additions, *changes.modifications):
            new_hash = response.new_entry_hashes.get(change.key, {}).get(
                change.lang, change.hash
            )
            entries.setdefault(change.key, {})[change.lang] = new_hash
        for deletion in changes.deletions:
            langs = entries.get(deletion.key, {})
            langs.pop(deletion.lang, None)
            if not langs:
                entries.pop(deletion.key, None)

        config_properties = dict(
            baseline.config_properties if baseline else {}
        )
        warnings: tuple[str, ...] = ()
        if config_changes.has_changes and not response.config_applied:
            warnings = ("Server did not apply the config changes",)
            logger.warning(warnings[0])
        else:
            for change in config_changes.changes:
                config_properties[change.path] = (
                    response.new_config_hashes.get(change.path, change.hash)
                )
            for deletion in config_changes.deletions:
                config_properties.pop(deletion.path, None)

        try:
            self.state_store.save(
                SyncState(entries=entries, config_properties=config_properties)
            )
        except OSError as e:
            logger.error("Push applied remotely but state save failed: %s", e)
            return report(
                SyncStatus.FAILED,
                error=f"Pushed, but failed to save sync state: {e}",
                warnings=warnings,
                **result,
            )

        logger.info(
            "Push applied: %d entries, %d deletions",
            response.applied,
            response.deleted,
        )
        return report(SyncStatus.APPLIED, warnings=warnings, **result)
