"""Pull backups: snapshot local files before destructive writes.

Each backup is a zip archive in ``<project>/.lrm/pull-backups/`` named
``pull-backup-<UTC yyyyMMdd-HHmmss>[-n].zip``.  It stores every listed
file under ``files/`` plus a ``backup-metadata.json`` member recording
which files were archived and which paths did not exist, so a restore
also removes files created by the failed apply.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import zipfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from pydantic import BaseModel

from lrm_sync.errors import BackupError
from lrm_sync.file_handler import atomic_write_bytes

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "pull-backup-"
METADATA_NAME = "backup-metadata.json"
DEFAULT_RETENTION = 10
_FILES_DIR = "files/"


class BackupInfo(BaseModel):
    """Metadata of one backup archive."""

    name: str
    path: str
    created_at: str
    files: tuple[str, ...] = ()
    absent: tuple[str, ...] = ()
    size: int = 0

    model_config = {"frozen": True}


class BackupManager:
    """Create, list, restore and prune pull backups of one project.

    Args:
        project_dir: Project root; archived paths are relative to it.
        backup_dir: Backup directory relative to ``project_dir``.
        retention: Default number of backups ``prune_backups`` keeps.
    """

    def __init__(
        self,
        project_dir: Path,
        backup_dir: str = ".lrm/pull-backups",
        retention: int = DEFAULT_RETENTION,
    ) -> None:
        self.project_dir = Path(project_dir).resolve()
        self.backup_dir = self.project_dir / backup_dir
        self.retention = retention

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _relative(self, path: str | Path) -> str:
        """Project-relative POSIX path; rejects paths outside the project."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.project_dir / candidate
        try:
            rel = candidate.resolve().relative_to(self.project_dir)
        except ValueError:
            raise BackupError(
                f"Path {path} is outside the project directory"
            ) from None
        return rel.as_posix()

    def _target(self, rel: str) -> Path:
        pure = PurePosixPath(rel)
        if pure.is_absolute() or ".." in pure.parts:
            raise BackupError(f"Unsafe path in backup: {rel}")
        return self.project_dir / Path(*pure.parts)

    def _new_archive_path(self, now: datetime) -> Path:
        stem = f"{BACKUP_PREFIX}{now.strftime('%Y%m%d-%H%M%S')}"
        candidate = self.backup_dir / f"{stem}.zip"
        counter = 1
        while candidate.exists():
            candidate = self.backup_dir / f"{stem}-{counter}.zip"
            counter += 1
        return candidate

    def _resolve_backup(self, name_or_path: str | Path) -> Path:
        given = Path(name_or_path)
        candidates = [given, self.backup_dir / given.name]
        if given.suffix != ".zip":
            candidates.append(self.backup_dir / f"{given.name}.zip")
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise BackupError(f"Backup not found: {name_or_path}")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_backup(self, paths: Iterable[str | Path]) -> BackupInfo:
        """Archive *paths* into a new backup.

        Paths that do not exist are recorded as absent.  The archive is
        written under a temporary name and renamed when complete.

        Args:
            paths: Files to snapshot, absolute or project-relative.

        Returns:
            ``BackupInfo`` of the new archive.

        Raises:
            BackupError: If any file cannot be archived; no archive is
                left behind.
        """
        now = datetime.now(timezone.utc)
        rel_paths = sorted({self._relative(p) for p in paths})
        files: list[str] = []
        absent: list[str] = []

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            archive_path = self._new_archive_path(now)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.backup_dir), prefix=".backup-", suffix=".tmp"
            )
        except OSError as e:
            raise BackupError(f"Cannot create backup directory: {e}") from e

        try:
            with os.fdopen(fd, "wb") as fh:
                with zipfile.ZipFile(
                    fh, "w", compression=zipfile.ZIP_DEFLATED
                ) as archive:
                    for rel in rel_paths:
                        source = self._target(rel)
                        if not source.exists():
                            absent.append(rel)
                            continue
                        archive.writestr(
                            _FILES_DIR + rel, source.read_bytes()
                        )
                        files.append(rel)
                    metadata = {
                        "version": 1,
                        "createdAt": now.isoformat(),
                        "files": files,
                        "absent": absent,
                    }
                    archive.writestr(
                        METADATA_NAME, json.dumps(metadata, indent=2)
                    )
            os.replace(tmp_path, archive_path)
        except (OSError, zipfile.BadZipFile, BackupError) as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(e, BackupError):
                raise
            raise BackupError(f"Failed to create backup: {e}") from e

        info = BackupInfo(
            name=archive_path.name,
            path=str(archive_path),
            created_at=now.isoformat(),
            files=tuple(files),
            absent=tuple(absent),
            size=archive_path.stat().st_size,
        )
        logger.info(
            "Created backup %s (%d files, %d absent)",
            info.name,
            len(files),
            len(absent),
        )
        return info

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _read_info(self, archive_path: Path) -> BackupInfo:
        try:
            with zipfile.ZipFile(archive_path) as archive:
                metadata = json.loads(archive.read(METADATA_NAME))
        except (OSError, KeyError, ValueError, zipfile.BadZipFile) as e:
            raise BackupError(
                f"Unreadable backup {archive_path.name}: {e}"
            ) from e
        if not isinstance(metadata, dict):
            raise BackupError(
                f"Unreadable backup {archive_path.name}: bad metadata"
            )
        return BackupInfo(
            name=archive_path.name,
            path=str(archive_path),
            created_at=str(metadata.get("createdAt", "")),
            files=tuple(metadata.get("files") or ()),
            absent=tuple(metadata.get("absent") or ()),
            size=archive_path.stat().st_size,
        )

    def list_backups(self) -> list[BackupInfo]:
        """Return readable backups, newest first."""
        if not self.backup_dir.is_dir():
            return []
        infos: list[BackupInfo] = []
        for archive_path in self.backup_dir.glob(f"{BACKUP_PREFIX}*.zip"):
            try:
                infos.append(self._read_info(archive_path))
            except BackupError as e:
                logger.warning("Skipping backup: %s", e)
        infos.sort(key=lambda i: (i.created_at, i.name), reverse=True)
        return infos

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore_backup(self, name_or_path: str | Path) -> BackupInfo:
        """Restore every archived file byte-for-byte.

        Paths recorded as absent are deleted if they now exist.

        Args:
            name_or_path: Archive file name (with or without ``.zip``) or
                path.

        Returns:
            ``BackupInfo`` of the restored archive.

        Raises:
            BackupError: If the backup is unknown or unreadable, or a file
                cannot be restored.
        """
        archive_path = self._resolve_backup(name_or_path)
        info = self._read_info(archive_path)
        try:
            with zipfile.ZipFile(archive_path) as archive:
                for rel in info.files:
                    atomic_write_bytes(
                        self._target(rel), archive.read(_FILES_DIR + rel)
                    )
            for rel in info.absent:
                target = self._target(rel)
                if target.exists():
                    target.unlink()
        except (OSError, KeyError, zipfile.BadZipFile) as e:
            raise BackupError(
                f"Failed to restore backup {info.name}: {e}"
            ) from e
        logger.warning(
            "Restored %d files from backup %s", len(info.files), info.name
        )
        return info

    # ------------------------------------------------------------------
    # Prune
    # ------------------------------------------------------------------

    def prune_backups(self, keep: int | None = None) -> int:
        """Delete all but the newest *keep* backups.

        Args:
            keep: Backups to keep; defaults to ``retention``.

        Returns:
            Number of backups removed.
        """
        keep = self.retention if keep is None else keep
        if keep < 0:
            raise ValueError("keep must be >= 0")
        stale = self.list_backups()[keep:]
        removed = 0
        for info in reversed(stale):
            try:
                Path(info.path).unlink()
                removed += 1
            except OSError as e:
                logger.warning("Could not delete backup %s: %s", info.name, e)
        if removed:
            logger.info("Pruned %d old backups", removed)
        return removed
