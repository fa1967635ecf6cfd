"""Key-level cloud sync engine.

Public API for synchronising local localization resource files with a
remote authoritative store.

Architecture
------------
The engine performs a **key-level three-way merge**: every
(key, language) pair is compared through content hashes on the local
side, the remote side, and the baseline recorded at the last successful
sync.  Only pairs changed differently on both sides become conflicts.

Modules:

- ``engine``        -- ``SyncEngine``: orchestrates pull and push.
- ``hasher``        -- deterministic entry / config content hashes.
- ``extractor``     -- ``LocalEntryExtractor``: local files to entries.
- ``state``         -- ``SyncStateStore``: baseline load/save/migration.
- ``models``        -- entries, conflicts, resolutions, results, reports.
- ``merger``        -- three-way entry merge and push-change computation.
- ``config_merger`` -- the same merge for ``lrm.json`` properties.
- ``resolver``      -- conflict policies (prompt, local, remote, abort).
- ``backup``        -- ``BackupManager``: pull backups and restore.
- ``regenerator``   -- ``FileRegenerator``: merge results to files.
- ``backend``       -- ``ResourceBackend`` protocol and the JSON backend.
- ``payload``       -- remote API wire format.
- ``reporter``      -- human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from lrm_sync.config import load_settings
    from lrm_sync.core.client import SyncApiClient
    from lrm_sync.sync import (
        ConflictResolution,
        SyncEngine,
        format_pull_report,
    )

    unified, client_config = load_settings()
    engine = SyncEngine(
        client=SyncApiClient(client_config),
        settings=unified.sync,
        project_dir=Path("."),
    )

    # Dry-run first to preview changes
    print(format_pull_report(engine.pull(dry_run=True)))

    report = engine.pull()
    if report.conflicts:
        resolutions = [
            ConflictResolution(key=c.key, lang=c.lang, resolution="Remote")
            for c in report.conflicts
        ]
        report = engine.pull(resolutions=resolutions)
    print(format_pull_report(report))
"""

from .backup import BackupInfo, BackupManager
from .engine import SyncEngine
from .merger import (
    apply_resolutions,
    compute_push_changes,
    merge_entries,
    merge_for_first_pull,
)
from .models import (
    ConfigConflict,
    ConflictResolution,
    ConflictType,
    EntryConflict,
    LocalEntry,
    MergeResult,
    PullReport,
    PushReport,
    RemoteEntry,
    ResolutionChoice,
    ResolutionTarget,
    SyncState,
    SyncStatus,
)
from .reporter import (
    format_conflict,
    format_pull_report,
    format_push_report,
    report_to_json,
)
from .state import SyncStateStore

__all__ = [
    "BackupInfo",
    "BackupManager",
    "ConfigConflict",
    "ConflictResolution",
    "ConflictType",
    "EntryConflict",
    "LocalEntry",
    "MergeResult",
    "PullReport",
    "PushReport",
    "RemoteEntry",
    "ResolutionChoice",
    "ResolutionTarget",
    "SyncEngine",
    "SyncState",
    "SyncStateStore",
    "SyncStatus",
    "apply_resolutions",
    "compute_push_changes",
    "format_conflict",
    "format_pull_report",
    "format_push_report",
    "merge_entries",
    "merge_for_first_pull",
    "report_to_json",
]
