"""Sync state persistence layer.

Manages ``<project>/.lrm/sync-state.json``, the baseline that records the
hash of every (key, language) pair and config property as it was when
both sides last agreed.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Never raises on load** -- an unreadable file is reported through
  ``LoadResult.was_corrupted`` and the caller falls back to first-pull
  semantics.
* **Versioned** -- version 1 files (one hash per resource file) are
  detected and can be migrated with ``migrate_legacy_state()``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lrm_sync.file_handler import atomic_write_text
from lrm_sync.sync.config_merger import extract_config_properties
from lrm_sync.sync.hasher import file_hash
from lrm_sync.sync.models import (
    STATE_VERSION,
    LegacySyncState,
    LoadResult,
    LocalEntry,
    SyncState,
)

logger = logging.getLogger(__name__)

CURRENT_VERSION = STATE_VERSION
STATE_FILE_NAME = "sync-state.json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _lower_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {str(k).lower(): v for k, v in data.items()}


class SyncStateStore:
    """Load, save, and clear the sync baseline of one project.

    Args:
        project_dir: Root of the local project.
        state_dir: Directory (relative to ``project_dir``) holding the
            state file.
    """

    def __init__(self, project_dir: Path, state_dir: str = ".lrm") -> None:
        self._state_dir = Path(project_dir) / state_dir

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILE_NAME

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> LoadResult:
        """Load the baseline from disk.

        Returns:
            ``LoadResult`` with ``state=None`` when the file is missing
            (both flags false), corrupted (``was_corrupted``) or a
            version 1 file (``needs_migration`` with ``legacy`` set).
        """
        path = self.path
        if not path.exists():
            return LoadResult()

        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read sync state %s: %s", path, e)
            return LoadResult(was_corrupted=True)

        if not text.strip():
            logger.warning("Sync state %s is empty; ignoring it", path)
            return LoadResult(was_corrupted=True)

        try:
            data = json.loads(text)
        except ValueError as e:
            logger.warning("Sync state %s is not valid JSON: %s", path, e)
            return LoadResult(was_corrupted=True)

        if not isinstance(data, dict):
            logger.warning(
                "Sync state %s has a %s root; ignoring it",
                path,
                type(data).__name__,
            )
            return LoadResult(was_corrupted=True)

        version = data.get("version")
        lowered = _lower_keys(data)
        if version is None and ("files" in lowered or "confighash" in lowered):
            version = 1

        if version == 1:
            return self._load_legacy(lowered)

        if not isinstance(version, int) or isinstance(version, bool):
            logger.warning(
                "Sync state %s has invalid version %r; ignoring it",
                path,
                version,
            )
            return LoadResult(was_corrupted=True)

        if version > CURRENT_VERSION:
            logger.warning(
                "Sync state %s has version %d (newer than %d); "
                "reading the fields this version understands",
                path,
                version,
                CURRENT_VERSION,
            )

        try:
            state = SyncState.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "Sync state %s is invalid (%d errors); ignoring it",
                path,
                e.error_count(),
            )
            return LoadResult(was_corrupted=True)

        logger.debug(
            "Loaded sync state with %d entries and %d config properties",
            state.entry_count,
            len(state.config_properties),
        )
        return LoadResult(state=state)

    def _load_legacy(self, lowered: dict[str, Any]) -> LoadResult:
        try:
            legacy = LegacySyncState(
                timestamp=lowered.get("timestamp"),
                config_hash=lowered.get("confighash"),
                files=lowered.get("files") or {},
            )
        except ValidationError:
            logger.warning(
                "Legacy sync state %s is invalid; ignoring it", self.path
            )
            return LoadResult(was_corrupted=True)
        logger.warning(
            "Sync state %s uses the version 1 file-hash format; "
            "migration required",
            self.path,
        )
        return LoadResult(needs_migration=True, legacy=legacy)

    def save(self, state: SyncState) -> SyncState:
        """Persist the baseline atomically.

        Creates the state directory if needed and stamps the current
        version and UTC time.

        Args:
            state: Baseline to write.

        Returns:
            The state exactly as written.
        """
        stamped = state.model_copy(
            update={"version": CURRENT_VERSION, "timestamp": _utc_now()}
        )
        payload = {
            "version": stamped.version,
            "timestamp": stamped.timestamp,
            "entries": stamped.entries,
            "configProperties": stamped.config_properties,
        }
        self._state_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(
            self.path, json.dumps(payload, indent=2, ensure_ascii=False)
        )
        logger.debug(
            "Saved sync state with %d entries to %s",
            stamped.entry_count,
            self.path,
        )
        return stamped

    def clear(self) -> None:
        """Delete the state file; the directory is kept. No-op if absent."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


# ------------------------------------------------------------------
# Legacy migration
# ------------------------------------------------------------------


def migrate_legacy_state(
    legacy: LegacySyncState,
    files: Mapping[str, tuple[bytes, Iterable[LocalEntry]]],
    config_text: str | None = None,
) -> SyncState:
    """Best-effort conversion of a version 1 baseline.

    A resource file whose current bytes still hash to its recorded file
    hash was unchanged since the last sync, so every entry it contains
    was in sync and enters the baseline.  The same holds for the config
    file and its properties.  Everything else gets no baseline and is
    treated like a first sync for that pair.

    Args:
        legacy: The version 1 state.
        files: Relative path -> (current bytes, entries read from it).
        config_text: Current config file text, if any.

    Returns:
        A version 2 ``SyncState``.
    """
    recorded = {
        path.replace("\\", "/"): h.lower() for path, h in legacy.files.items()
    }
    # Older clients recorded paths relative to the resources directory.
    by_name = {path.rsplit("/", 1)[-1]: h for path, h in recorded.items()}
    entries: dict[str, dict[str, str]] = {}
    migrated_files = 0
    for path, (data, file_entries) in files.items():
        normalized = path.replace("\\", "/")
        old_hash = recorded.get(normalized)
        if old_hash is None:
            old_hash = by_name.get(normalized.rsplit("/", 1)[-1])
        if old_hash is None or file_hash(data) != old_hash:
            logger.debug("Legacy migration: %s changed; no baseline", path)
            continue
        migrated_files += 1
        for entry in file_entries:
            entries.setdefault(entry.key, {})[entry.lang] = entry.hash

    config_properties: dict[str, str] = {}
    if config_text is not None and legacy.config_hash:
        if (
            file_hash(config_text.encode("utf-8"))
            == legacy.config_hash.lower()
        ):
            try:
                properties = extract_config_properties(config_text)
            except ValueError as e:
                logger.warning(
                    "Legacy migration: config file is not valid JSON: %s", e
                )
                properties = {}
            config_properties = {
                path: prop.hash for path, prop in properties.items()
            }

    logger.info(
        "Migrated legacy sync state: %d of %d files unchanged, "
        "%d config properties",
        migrated_files,
        len(recorded),
        len(config_properties),
    )
    return SyncState(
        timestamp=legacy.timestamp,
        entries=entries,
        config_properties=config_properties,
    )
