"""Pydantic models for the key-level sync engine.

Defines the data contracts shared by the merger, the state store, the
engine and the reporter:

- ``LocalEntry`` / ``RemoteEntry``: one hashed (key, language) value.
- ``SyncState``: the last-synchronised baseline.
- ``EntryConflict`` / ``ConfigConflict`` and ``ConflictResolution``.
- ``MergeResult`` / ``ConfigMergeResult``: outcome of a three-way merge.
- ``PushChanges`` / ``ConfigChanges``: what a push sends.
- ``PullReport`` / ``PushReport``: outcome of one engine run.

All models are frozen (immutable) for safety.  Collection fields are
tuples, or dicts that are built fresh for every result.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

STATE_VERSION = 2


class ConflictType(str, Enum):
    """How the local and remote sides disagree."""

    BOTH_MODIFIED = "BothModified"
    DELETED_LOCALLY_MODIFIED_REMOTELY = "DeletedLocallyModifiedRemotely"
    DELETED_REMOTELY_MODIFIED_LOCALLY = "DeletedRemotelyModifiedLocally"


class ResolutionChoice(str, Enum):
    LOCAL = "Local"
    REMOTE = "Remote"
    EDIT = "Edit"
    SKIP = "Skip"


class ResolutionTarget(str, Enum):
    ENTRY = "Entry"
    CONFIG = "Config"


class MergeSource(str, Enum):
    LOCAL = "Local"
    REMOTE = "Remote"
    EDITED = "Edited"


class SyncStatus(str, Enum):
    """Final status of a pull or push run."""

    APPLIED = "applied"
    UP_TO_DATE = "up_to_date"
    CONFLICTS = "conflicts"
    ABORTED = "aborted"
    CANCELLED = "cancelled"
    FAILED = "failed"
    DRY_RUN = "dry_run"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class LocalEntry(BaseModel):
    """One translation read from the local resource files.

    Attributes:
        key: Entry key.
        lang: Language code.
        value: Translated text (empty for plural entries).
        hash: Content hash of value/plural forms plus comment.
        comment: Translator comment, if any.
        is_plural: Whether the entry carries plural forms.
        plural_forms: CLDR category -> text for plural entries.
    """

    key: str
    lang: str
    value: str
    hash: str
    comment: str | None = None
    is_plural: bool = False
    plural_forms: dict[str, str] | None = None

    model_config = {"frozen": True}


class RemoteEntry(BaseModel):
    """One translation as served by the remote sync API.

    ``hash`` is computed server-side with the same algorithm as
    ``LocalEntry.hash``.
    """

    key: str
    lang: str
    value: str
    hash: str
    updated_at: str | None = None
    comment: str | None = None
    is_plural: bool = False
    plural_forms: dict[str, str] | None = None

    model_config = {"frozen": True}


class MergedEntry(BaseModel):
    """An entry the regenerator must write locally."""

    key: str
    lang: str
    value: str
    hash: str
    comment: str | None = None
    is_plural: bool = False
    plural_forms: dict[str, str] | None = None
    source: MergeSource = MergeSource.REMOTE

    model_config = {"frozen": True}


class ConfigProperty(BaseModel):
    """A flattened configuration property: canonical JSON text and hash."""

    value: str
    hash: str

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Conflicts and resolutions
# ---------------------------------------------------------------------------


class EntryConflict(BaseModel):
    """A (key, language) pair that cannot be merged automatically.

    ``local_value=None`` means the entry is missing locally,
    ``remote_value=None`` means it was deleted remotely.  The remote
    comment and plural forms are carried so a ``Remote`` resolution can
    be applied without refetching.
    """

    key: str
    lang: str
    type: ConflictType
    local_value: str | None = None
    remote_value: str | None = None
    local_hash: str | None = None
    remote_hash: str | None = None
    remote_updated_at: str | None = None
    local_comment: str | None = None
    remote_comment: str | None = None
    local_is_plural: bool = False
    remote_is_plural: bool = False
    local_plural_forms: dict[str, str] | None = None
    remote_plural_forms: dict[str, str] | None = None

    model_config = {"frozen": True}


class ConfigConflict(BaseModel):
    """A configuration property that cannot be merged automatically."""

    path: str
    type: ConflictType
    local_value: str | None = None
    remote_value: str | None = None
    local_hash: str | None = None
    remote_hash: str | None = None

    model_config = {"frozen": True}


class ConflictResolution(BaseModel):
    """The caller's decision for one conflict.

    For ``target=Config`` the property path goes in ``key`` and ``lang``
    is ignored.
    """

    key: str
    lang: str | None = None
    target: ResolutionTarget = ResolutionTarget.ENTRY
    resolution: ResolutionChoice
    edited_value: str | None = None
    edited_comment: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _edit_needs_value(self) -> ConflictResolution:
        if self.resolution == ResolutionChoice.EDIT and not self.edited_value:
            raise ValueError(
                "An Edit resolution requires a non-empty edited_value"
            )
        return self


# ---------------------------------------------------------------------------
# Baseline
# ---------------------------------------------------------------------------


class SyncState(BaseModel):
    """The last-synchronised baseline.

    Every (key, lang) hash in ``entries`` and every path hash in
    ``config_properties`` was equal on both sides at ``timestamp``.
    """

    version: int = STATE_VERSION
    timestamp: str | None = None
    entries: dict[str, dict[str, str]] = Field(default_factory=dict)
    config_properties: dict[str, str] = Field(
        default_factory=dict, alias="configProperties"
    )

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "ignore",
    }

    def entry_hash(self, key: str, lang: str) -> str | None:
        """Return the baseline hash for (key, lang), or ``None``."""
        return self.entries.get(key, {}).get(lang)

    @property
    def entry_count(self) -> int:
        return sum(len(langs) for langs in self.entries.values())


class LegacySyncState(BaseModel):
    """Version 1 state: one hash per resource file plus the config file."""

    timestamp: str | None = None
    config_hash: str | None = None
    files: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class LoadResult(BaseModel):
    """Outcome of ``SyncStateStore.load()``."""

    state: SyncState | None = None
    was_corrupted: bool = False
    needs_migration: bool = False
    legacy: LegacySyncState | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Merge results
# ---------------------------------------------------------------------------


class MergeResult(BaseModel):
    """Outcome of the entry three-way merge.

    Attributes:
        to_write: Entries to write locally, at most one per (key, lang).
        to_delete: (key, lang) pairs to remove locally.
        conflicts: Pairs that need a resolution.
        auto_merged: Remote changes applied without conflict.
        unchanged: Pairs needing no local write.
        new_hashes: The next baseline, key -> lang -> hash.
        warnings: Skipped remote entries and similar anomalies.
    """

    to_write: tuple[MergedEntry, ...] = ()
    to_delete: tuple[tuple[str, str], ...] = ()
    conflicts: tuple[EntryConflict, ...] = ()
    auto_merged: int = 0
    unchanged: int = 0
    new_hashes: dict[str, dict[str, str]] = Field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_write or self.to_delete)


class ConfigMergeResult(BaseModel):
    """Outcome of the configuration three-way merge."""

    to_write: dict[str, str] = Field(default_factory=dict)
    to_delete: tuple[str, ...] = ()
    conflicts: tuple[ConfigConflict, ...] = ()
    auto_merged: int = 0
    unchanged: int = 0
    new_hashes: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_write or self.to_delete)


# ---------------------------------------------------------------------------
# Push payloads (serialised camelCase on the wire)
# ---------------------------------------------------------------------------

_WIRE_CONFIG = {
    "frozen": True,
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class EntryChange(BaseModel):
    """A local addition (``base_hash=None``) or modification."""

    key: str
    lang: str
    value: str
    comment: str | None = None
    is_plural: bool = False
    plural_forms: dict[str, str] | None = None
    hash: str
    base_hash: str | None = None

    model_config = _WIRE_CONFIG


class EntryDeletion(BaseModel):
    key: str
    lang: str
    base_hash: str

    model_config = _WIRE_CONFIG


class PushChanges(BaseModel):
    additions: tuple[EntryChange, ...] = ()
    modifications: tuple[EntryChange, ...] = ()
    deletions: tuple[EntryDeletion, ...] = ()

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return not (self.additions or self.modifications or self.deletions)

    @property
    def total(self) -> int:
        return (
            len(self.additions)
            + len(self.modifications)
            + len(self.deletions)
        )


class ConfigPropertyChange(BaseModel):
    path: str
    value: str
    hash: str
    base_hash: str | None = None

    model_config = _WIRE_CONFIG


class ConfigPropertyDeletion(BaseModel):
    path: str
    base_hash: str

    model_config = _WIRE_CONFIG


class ConfigChanges(BaseModel):
    changes: tuple[ConfigPropertyChange, ...] = ()
    deletions: tuple[ConfigPropertyDeletion, ...] = ()

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        return bool(self.changes or self.deletions)


# ---------------------------------------------------------------------------
# Regeneration and reports
# ---------------------------------------------------------------------------


class RegenerationResult(BaseModel):
    """Outcome of writing merge results back to resource files.

    Attributes:
        success: Whether every file was written.
        error: Failure description when ``success`` is False.
        updated_files: Existing files rewritten.
        created_files: New language files created.
        deleted_entries: Number of (key, lang) pairs removed.
        written_files: Paths written so far, in order.
    """

    success: bool
    error: str | None = None
    updated_files: tuple[str, ...] = ()
    created_files: tuple[str, ...] = ()
    deleted_entries: int = 0
    written_files: tuple[str, ...] = ()

    model_config = {"frozen": True}


class PullReport(BaseModel):
    """Aggregate report for one pull run.

    Attributes:
        status: Final status.
        dry_run: Whether nothing was written.
        written: Entries written locally.
        deleted: Entries removed locally.
        auto_merged: Remote changes merged without conflict.
        unchanged: Pairs needing no write.
        conflicts: Unresolved entry conflicts (status ``CONFLICTS``).
        config_conflicts: Unresolved config conflicts.
        config_written: Config properties written.
        config_deleted: Config properties removed.
        files_written: Resource files written.
        backup_name: Backup archive created for this run, if any.
        restored: Whether the backup was restored after a failure.
        state_was_corrupted: The baseline was unreadable and ignored.
        state_migrated: A version 1 baseline was migrated.
        first_pull: No usable baseline existed.
        warnings: Non-fatal anomalies.
        error: Failure description.
        started_at: ISO 8601 start time.
        completed_at: ISO 8601 end time.
    """

    status: SyncStatus
    dry_run: bool = False
    written: int = 0
    deleted: int = 0
    auto_merged: int = 0
    unchanged: int = 0
    conflicts: tuple[EntryConflict, ...] = ()
    config_conflicts: tuple[ConfigConflict, ...] = ()
    config_written: int = 0
    config_deleted: int = 0
    files_written: tuple[str, ...] = ()
    backup_name: str | None = None
    restored: bool = False
    state_was_corrupted: bool = False
    state_migrated: bool = False
    first_pull: bool = False
    warnings: tuple[str, ...] = ()
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.status in (
            SyncStatus.APPLIED,
            SyncStatus.UP_TO_DATE,
            SyncStatus.DRY_RUN,
        )


class PushReport(BaseModel):
    """Aggregate report for one push run."""

    status: SyncStatus
    dry_run: bool = False
    additions: int = 0
    modifications: int = 0
    deletions: int = 0
    config_changes: int = 0
    config_deletions: int = 0
    applied: int = 0
    deleted: int = 0
    config_applied: bool = False
    conflicts: tuple[EntryConflict, ...] = ()
    state_was_corrupted: bool = False
    state_migrated: bool = False
    warnings: tuple[str, ...] = ()
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.status in (
            SyncStatus.APPLIED,
            SyncStatus.UP_TO_DATE,
            SyncStatus.DRY_RUN,
        )
