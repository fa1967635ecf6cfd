"""Key-level three-way merge.

Every (key, language) pair in local ∪ remote ∪ baseline is classified from
its local hash L, remote hash R and baseline hash B.  Only pairs where both
sides moved away from the baseline in different directions become
conflicts; everything else merges automatically.

All functions are pure: inputs are never mutated and results are fresh
frozen models.  ``classify()`` is shared with the config merger.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum

from lrm_sync.errors import SyncAbortedError
from lrm_sync.sync.hasher import entry_hash
from lrm_sync.sync.models import (
    ConflictResolution,
    ConflictType,
    EntryChange,
    EntryConflict,
    EntryDeletion,
    LocalEntry,
    MergedEntry,
    MergeResult,
    MergeSource,
    PushChanges,
    RemoteEntry,
    ResolutionChoice,
    ResolutionTarget,
    SyncState,
)
from lrm_sync.validators import validate_entry_key, validate_language_code

logger = logging.getLogger(__name__)

EntryId = tuple[str, str]


class PairAction(str, Enum):
    """What the merge does with one (key, lang) pair or config path."""

    UNCHANGED = "unchanged"
    DROP = "drop"
    TAKE_REMOTE = "take_remote"
    DELETE_LOCAL = "delete_local"
    LOCAL_AHEAD = "local_ahead"
    CONFLICT = "conflict"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify(
    local_hash: str | None,
    remote_hash: str | None,
    base_hash: str | None,
) -> tuple[PairAction, ConflictType | None]:
    """Classify one pair from its three hashes (``None`` means absent).

    Returns:
        ``(action, conflict_type)``; ``conflict_type`` is set only for
        ``PairAction.CONFLICT``.
    """
    if local_hash is None and remote_hash is None:
        return PairAction.DROP, None
    if local_hash == remote_hash:
        return PairAction.UNCHANGED, None

    if base_hash is None:
        if local_hash is None:
            return PairAction.TAKE_REMOTE, None
        if remote_hash is None:
            return PairAction.LOCAL_AHEAD, None
        return PairAction.CONFLICT, ConflictType.BOTH_MODIFIED

    if local_hash == base_hash:
        if remote_hash is None:
            return PairAction.DELETE_LOCAL, None
        return PairAction.TAKE_REMOTE, None
    if remote_hash == base_hash:
        return PairAction.LOCAL_AHEAD, None

    # Both sides moved away from the baseline, differently.
    if local_hash is None:
        return (
            PairAction.CONFLICT,
            ConflictType.DELETED_LOCALLY_MODIFIED_REMOTELY,
        )
    if remote_hash is None:
        return (
            PairAction.CONFLICT,
            ConflictType.DELETED_REMOTELY_MODIFIED_LOCALLY,
        )
    return PairAction.CONFLICT, ConflictType.BOTH_MODIFIED


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_hash(
    hashes: dict[str, dict[str, str]], key: str, lang: str, value: str
) -> None:
    hashes.setdefault(key, {})[lang] = value


def _drop_hash(hashes: dict[str, dict[str, str]], key: str, lang: str) -> None:
    langs = hashes.get(key)
    if langs is None:
        return
    langs.pop(lang, None)
    if not langs:
        del hashes[key]


def _copy_hashes(
    hashes: Mapping[str, Mapping[str, str]],
) -> dict[str, dict[str, str]]:
    return {key: dict(langs) for key, langs in hashes.items()}


def index_local_entries(
    local: Iterable[LocalEntry],
) -> dict[EntryId, LocalEntry]:
    """Index local entries by (key, lang); the first occurrence wins."""
    index: dict[EntryId, LocalEntry] = {}
    for entry in local:
        entry_id = (entry.key, entry.lang)
        if entry_id in index:
            logger.debug(
                "Duplicate local entry %s [%s]; keeping the first",
                entry.key,
                entry.lang,
            )
            continue
        index[entry_id] = entry
    return index


def _index_remote_entries(
    remote: Iterable[RemoteEntry], warnings: list[str]
) -> dict[EntryId, RemoteEntry]:
    index: dict[EntryId, RemoteEntry] = {}
    for entry in remote:
        for ok, reason in (
            validate_entry_key(entry.key),
            validate_language_code(entry.lang),
        ):
            if not ok:
                message = (
                    f"Skipped remote entry {entry.key!r} [{entry.lang}]: "
                    f"{reason}"
                )
                logger.warning(message)
                warnings.append(message)
                break
        else:
            entry_id = (entry.key, entry.lang)
            if entry_id in index:
                message = (
                    f"Duplicate remote entry {entry.key!r} [{entry.lang}]; "
                    "keeping the first"
                )
                logger.warning(message)
                warnings.append(message)
                continue
            index[entry_id] = entry
    return index


def _merged_from_remote(entry: RemoteEntry) -> MergedEntry:
    return MergedEntry(
        key=entry.key,
        lang=entry.lang,
        value=entry.value,
        hash=entry.hash,
        comment=entry.comment,
        is_plural=entry.is_plural,
        plural_forms=entry.plural_forms,
        source=MergeSource.REMOTE,
    )


# ---------------------------------------------------------------------------
# Pull merge
# ---------------------------------------------------------------------------


def merge_for_first_pull(remote: Iterable[RemoteEntry]) -> MergeResult:
    """Merge when no baseline exists: remote wins every pair.

    Args:
        remote: Remote entries.

    Returns:
        ``MergeResult`` with every valid remote entry in ``to_write`` and
        no conflicts.
    """
    warnings: list[str] = []
    remote_index = _index_remote_entries(remote, warnings)
    new_hashes: dict[str, dict[str, str]] = {}
    to_write: list[MergedEntry] = []
    for (key, lang), entry in remote_index.items():
        to_write.append(_merged_from_remote(entry))
        _set_hash(new_hashes, key, lang, entry.hash)
    logger.debug("First pull: %d remote entries to write", len(to_write))
    return MergeResult(
        to_write=tuple(to_write),
        auto_merged=len(to_write),
        new_hashes=new_hashes,
        warnings=tuple(warnings),
    )


def merge_entries(
    local: Iterable[LocalEntry],
    remote: Iterable[RemoteEntry],
    baseline: SyncState | None,
) -> MergeResult:
    """Three-way merge of local and remote entries against the baseline.

    Args:
        local: Entries read from the local resource files.
        remote: Entries fetched from the remote store.
        baseline: Last synchronised state, or ``None`` for a first pull.

    Returns:
        The ``MergeResult``.  ``new_hashes`` is the baseline to persist
        once every conflict has been resolved and the writes applied.
    """
    if baseline is None:
        return merge_for_first_pull(remote)

    warnings: list[str] = []
    local_index = index_local_entries(local)
    remote_index = _index_remote_entries(remote, warnings)

    all_ids: set[EntryId] = set(local_index) | set(remote_index)
    for key, langs in baseline.entries.items():
        all_ids.update((key, lang) for lang in langs)

    to_write: list[MergedEntry] = []
    to_delete: list[EntryId] = []
    conflicts: list[EntryConflict] = []
    new_hashes: dict[str, dict[str, str]] = {}
    auto_merged = 0
    unchanged = 0

    for key, lang in sorted(all_ids):
        local_entry = local_index.get((key, lang))
        remote_entry = remote_index.get((key, lang))
        base = baseline.entry_hash(key, lang)
        action, conflict_type = classify(
            local_entry.hash if local_entry else None,
            remote_entry.hash if remote_entry else None,
            base,
        )

        if action is PairAction.UNCHANGED:
            unchanged += 1
            _set_hash(new_hashes, key, lang, local_entry.hash)
        elif action is PairAction.TAKE_REMOTE:
            to_write.append(_merged_from_remote(remote_entry))
            _set_hash(new_hashes, key, lang, remote_entry.hash)
            auto_merged += 1
            logger.debug("Auto-merge %s [%s] from remote", key, lang)
        elif action is PairAction.DELETE_LOCAL:
            to_delete.append((key, lang))
            auto_merged += 1
            logger.debug("Auto-delete %s [%s] (deleted remotely)", key, lang)
        elif action is PairAction.LOCAL_AHEAD:
            # Keep the old baseline so the push still sees the local change.
            unchanged += 1
            if base is not None:
                _set_hash(new_hashes, key, lang, base)
        elif action is PairAction.CONFLICT:
            if base is not None:
                _set_hash(new_hashes, key, lang, base)
            conflicts.append(
                EntryConflict(
                    key=key,
                    lang=lang,
                    type=conflict_type,
                    local_value=local_entry.value if local_entry else None,
                    remote_value=remote_entry.value if remote_entry else None,
                    local_hash=local_entry.hash if local_entry else None,
                    remote_hash=remote_entry.hash if remote_entry else None,
                    remote_updated_at=(
                        remote_entry.updated_at if remote_entry else None
                    ),
                    local_comment=local_entry.comment if local_entry else None,
                    remote_comment=(
                        remote_entry.comment if remote_entry else None
                    ),
                    local_is_plural=bool(
                        local_entry and local_entry.is_plural
                    ),
                    remote_is_plural=bool(
                        remote_entry and remote_entry.is_plural
                    ),
                    local_plural_forms=(
                        local_entry.plural_forms if local_entry else None
                    ),
                    remote_plural_forms=(
                        remote_entry.plural_forms if remote_entry else None
                    ),
                )
            )
            logger.debug(
                "Conflict %s [%s]: %s", key, lang, conflict_type.value
            )

    logger.info(
        "Merged %d pairs: %d auto-merged, %d unchanged, %d conflicts",
        len(all_ids),
        auto_merged,
        unchanged,
        len(conflicts),
    )
    return MergeResult(
        to_write=tuple(to_write),
        to_delete=tuple(to_delete),
        conflicts=tuple(conflicts),
        auto_merged=auto_merged,
        unchanged=unchanged,
        new_hashes=new_hashes,
        warnings=tuple(warnings),
    )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _find_resolution(
    conflict: EntryConflict,
    resolutions: Iterable[ConflictResolution],
) -> ConflictResolution | None:
    """Exact (key, lang) match first, then a key-wide (``lang=None``) one."""
    key_wide = None
    for resolution in resolutions:
        if resolution.key != conflict.key:
            continue
        if resolution.lang == conflict.lang:
            return resolution
        if resolution.lang is None and key_wide is None:
            key_wide = resolution
    return key_wide


def apply_resolutions(
    result: MergeResult,
    resolutions: Iterable[ConflictResolution],
    local_index: Mapping[EntryId, LocalEntry],
) -> MergeResult:
    """Fold conflict resolutions into a merge result.

    Only ``target=Entry`` resolutions are considered.  Conflicts without
    a matching resolution stay in ``conflicts``.  Re-applying the same
    resolutions yields the same result.

    Args:
        result: Output of ``merge_entries``.
        resolutions: The caller's decisions.
        local_index: Current local entries by (key, lang).

    Returns:
        A new ``MergeResult``.

    Raises:
        SyncAbortedError: If a ``Skip`` resolution matches a conflict.
    """
    entry_resolutions = [
        r for r in resolutions if r.target == ResolutionTarget.ENTRY
    ]

    to_write: dict[EntryId, MergedEntry] = {
        (e.key, e.lang): e for e in result.to_write
    }
    to_delete: dict[EntryId, None] = dict.fromkeys(result.to_delete)
    new_hashes = _copy_hashes(result.new_hashes)
    remaining: list[EntryConflict] = []
    auto_merged = result.auto_merged

    for conflict in result.conflicts:
        resolution = _find_resolution(conflict, entry_resolutions)
        if resolution is None:
            remaining.append(conflict)
            continue

        entry_id = (conflict.key, conflict.lang)
        choice = resolution.resolution

        if choice == ResolutionChoice.SKIP:
            raise SyncAbortedError(
                f"Sync aborted: conflict on {conflict.key!r} "
                f"[{conflict.lang}] was skipped"
            )

        if choice == ResolutionChoice.REMOTE:
            if conflict.remote_value is None:
                to_write.pop(entry_id, None)
                to_delete[entry_id] = None
                _drop_hash(new_hashes, *entry_id)
            else:
                to_delete.pop(entry_id, None)
                to_write[entry_id] = MergedEntry(
                    key=conflict.key,
                    lang=conflict.lang,
                    value=conflict.remote_value,
                    hash=conflict.remote_hash or "",
                    comment=conflict.remote_comment,
                    is_plural=conflict.remote_is_plural,
                    plural_forms=(
                        conflict.remote_plural_forms
                        if conflict.remote_is_plural
                        else None
                    ),
                    source=MergeSource.REMOTE,
                )
                if conflict.remote_hash:
                    _set_hash(new_hashes, *entry_id, conflict.remote_hash)
        elif choice == ResolutionChoice.LOCAL:
            local = local_index.get(entry_id)
            if conflict.local_value is None or local is None:
                # Deleted locally: baseline the remote side so the next
                # push sends the deletion against it.
                if conflict.remote_hash:
                    _set_hash(new_hashes, *entry_id, conflict.remote_hash)
                else:
                    _drop_hash(new_hashes, *entry_id)
            else:
                _set_hash(new_hashes, *entry_id, local.hash)
        elif choice == ResolutionChoice.EDIT:
            comment = (
                resolution.edited_comment
                if resolution.edited_comment is not None
                else conflict.remote_comment
            )
            edited_hash = entry_hash(resolution.edited_value, comment)
            to_delete.pop(entry_id, None)
            to_write[entry_id] = MergedEntry(
                key=conflict.key,
                lang=conflict.lang,
                value=resolution.edited_value,
                hash=edited_hash,
                comment=comment,
                source=MergeSource.EDITED,
            )
            _set_hash(new_hashes, *entry_id, edited_hash)

        auto_merged += 1
        logger.debug(
            "Resolved %s [%s] with %s",
            conflict.key,
            conflict.lang,
            choice.value,
        )

    return result.model_copy(
        update={
            "to_write": tuple(to_write.values()),
            "to_delete": tuple(to_delete),
            "conflicts": tuple(remaining),
            "auto_merged": auto_merged,
            "new_hashes": new_hashes,
        }
    )


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


def compute_push_changes(
    local: Iterable[LocalEntry],
    baseline: SyncState | None,
) -> PushChanges:
    """Compute what a push must send.

    Args:
        local: Current local entries.
        baseline: Last synchronised state (``None`` pushes everything as
            additions).

    Returns:
        ``PushChanges`` with additions (no base hash), modifications
        (carrying the base hash) and deletions of baseline pairs that are
        missing locally.
    """
    local_index = index_local_entries(local)
    base_entries = baseline.entries if baseline is not None else {}

    additions: list[EntryChange] = []
    modifications: list[EntryChange] = []
    for (key, lang), entry in sorted(local_index.items()):
        base = base_entries.get(key, {}).get(lang)
        if base == entry.hash:
            continue
        change = EntryChange(
            key=key,
            lang=lang,
            value=entry.value,
            comment=entry.comment,
            is_plural=entry.is_plural,
            plural_forms=entry.plural_forms,
            hash=entry.hash,
            base_hash=base,
        )
        (additions if base is None else modifications).append(change)

    deletions = [
        EntryDeletion(key=key, lang=lang, base_hash=base)
        for key, langs in sorted(base_entries.items())
        for lang, base in sorted(langs.items())
        if (key, lang) not in local_index
    ]

    return PushChanges(
        additions=tuple(additions),
        modifications=tuple(modifications),
        deletions=tuple(deletions),
    )
