"""Three-way merge of the project configuration file (``lrm.json``).

The root JSON object is flattened one level into PropertyPath -> canonical
compact JSON text, each hashed with ``config_hash``.  The merge uses the
same classification as entries (``merger.classify``) against
``SyncState.config_properties``.

Canonical form is ``json.dumps(value, ensure_ascii=False,
separators=(",", ":"), sort_keys=True)`` so whitespace and key order in
the file do not register as changes.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from lrm_sync.errors import SyncAbortedError
from lrm_sync.sync.hasher import config_hash
from lrm_sync.sync.merger import PairAction, classify
from lrm_sync.sync.models import (
    ConfigChanges,
    ConfigConflict,
    ConfigMergeResult,
    ConfigProperty,
    ConfigPropertyChange,
    ConfigPropertyDeletion,
    ConflictResolution,
    ResolutionChoice,
    ResolutionTarget,
)

logger = logging.getLogger(__name__)


def canonical_json(value: Any) -> str:
    """Render a JSON value in the canonical compact form."""
    return json.dumps(
        value, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    )


def make_property(value_json: str) -> ConfigProperty:
    return ConfigProperty(value=value_json, hash=config_hash(value_json))


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_config_properties(json_text: str) -> dict[str, ConfigProperty]:
    """Flatten the root object of a config file one level.

    Args:
        json_text: Config file contents.

    Returns:
        Property name -> ``ConfigProperty``.  A non-object root yields no
        properties.

    Raises:
        ValueError: If *json_text* is not valid JSON.
    """
    if not json_text.strip():
        return {}
    data = json.loads(json_text)
    if not isinstance(data, dict):
        logger.warning(
            "Config root is a %s, not an object; no properties synced",
            type(data).__name__,
        )
        return {}
    return {
        name: make_property(canonical_json(value))
        for name, value in data.items()
    }


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_config_for_first_pull(
    remote: Mapping[str, ConfigProperty],
) -> ConfigMergeResult:
    """Remote wins every property when no baseline exists."""
    return ConfigMergeResult(
        to_write={path: prop.value for path, prop in remote.items()},
        auto_merged=len(remote),
        new_hashes={path: prop.hash for path, prop in remote.items()},
    )


def merge_config(
    local: Mapping[str, ConfigProperty],
    remote: Mapping[str, ConfigProperty] | None,
    baseline: Mapping[str, str] | None,
) -> ConfigMergeResult:
    """Three-way merge of config properties.

    Args:
        local: Current local properties.
        remote: Remote properties, or ``None`` when the server sent no
            config block (nothing changes and the baseline is kept).
        baseline: ``SyncState.config_properties``, or ``None`` for a
            first pull.

    Returns:
        The ``ConfigMergeResult``.
    """
    if remote is None:
        return ConfigMergeResult(
            unchanged=len(local), new_hashes=dict(baseline or {})
        )
    if baseline is None:
        return merge_config_for_first_pull(remote)

    to_write: dict[str, str] = {}
    to_delete: list[str] = []
    conflicts: list[ConfigConflict] = []
    new_hashes: dict[str, str] = {}
    auto_merged = 0
    unchanged = 0

    for path in sorted(set(local) | set(remote) | set(baseline)):
        local_prop = local.get(path)
        remote_prop = remote.get(path)
        base = baseline.get(path)
        action, conflict_type = classify(
            local_prop.hash if local_prop else None,
            remote_prop.hash if remote_prop else None,
            base,
        )
        if action is PairAction.UNCHANGED:
            unchanged += 1
            new_hashes[path] = local_prop.hash
        elif action is PairAction.TAKE_REMOTE:
            to_write[path] = remote_prop.value
            new_hashes[path] = remote_prop.hash
            auto_merged += 1
        elif action is PairAction.DELETE_LOCAL:
            to_delete.append(path)
            auto_merged += 1
        elif action is PairAction.LOCAL_AHEAD:
            unchanged += 1
            if base is not None:
                new_hashes[path] = base
        elif action is PairAction.CONFLICT:
            if base is not None:
                new_hashes[path] = base
            conflicts.append(
                ConfigConflict(
                    path=path,
                    type=conflict_type,
                    local_value=local_prop.value if local_prop else None,
                    remote_value=remote_prop.value if remote_prop else None,
                    local_hash=local_prop.hash if local_prop else None,
                    remote_hash=remote_prop.hash if remote_prop else None,
                )
            )

    logger.debug(
        "Config merge: %d auto-merged, %d unchanged, %d conflicts",
        auto_merged,
        unchanged,
        len(conflicts),
    )
    return ConfigMergeResult(
        to_write=to_write,
        to_delete=tuple(to_delete),
        conflicts=tuple(conflicts),
        auto_merged=auto_merged,
        unchanged=unchanged,
        new_hashes=new_hashes,
    )


def apply_config_resolutions(
    result: ConfigMergeResult,
    resolutions: Iterable[ConflictResolution],
    local: Mapping[str, ConfigProperty],
) -> ConfigMergeResult:
    """Fold ``target=Config`` resolutions into a config merge result.

    ``ConflictResolution.key`` holds the property path.

    Raises:
        SyncAbortedError: If a ``Skip`` resolution matches a conflict.
    """
    by_path = {
        r.key: r for r in resolutions if r.target == ResolutionTarget.CONFIG
    }
    to_write = dict(result.to_write)
    to_delete = dict.fromkeys(result.to_delete)
    new_hashes = dict(result.new_hashes)
    remaining: list[ConfigConflict] = []
    auto_merged = result.auto_merged

    for conflict in result.conflicts:
        resolution = by_path.get(conflict.path)
        if resolution is None:
            remaining.append(conflict)
            continue
        path = conflict.path
        choice = resolution.resolution

        if choice == ResolutionChoice.SKIP:
            raise SyncAbortedError(
                f"Sync aborted: config conflict on {path!r} was skipped"
            )
        if choice == ResolutionChoice.REMOTE:
            if conflict.remote_value is None:
                to_write.pop(path, None)
                to_delete[path] = None
                new_hashes.pop(path, None)
            else:
                to_delete.pop(path, None)
                to_write[path] = conflict.remote_value
                new_hashes[path] = conflict.remote_hash or config_hash(
                    conflict.remote_value
                )
        elif choice == ResolutionChoice.LOCAL:
            local_prop = local.get(path)
            if local_prop is None:
                if conflict.remote_hash:
                    new_hashes[path] = conflict.remote_hash
                else:
                    new_hashes.pop(path, None)
            else:
                new_hashes[path] = local_prop.hash
        elif choice == ResolutionChoice.EDIT:
            edited = _canonical_or_string(resolution.edited_value)
            to_delete.pop(path, None)
            to_write[path] = edited
            new_hashes[path] = config_hash(edited)
        auto_merged += 1

    return result.model_copy(
        update={
            "to_write": to_write,
            "to_delete": tuple(to_delete),
            "conflicts": tuple(remaining),
            "auto_merged": auto_merged,
            "new_hashes": new_hashes,
        }
    )


def _canonical_or_string(text: str) -> str:
    """Canonicalise edited JSON text; plain text becomes a JSON string."""
    try:
        return canonical_json(json.loads(text))
    except ValueError:
        return canonical_json(text)


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


def compute_config_push_changes(
    local: Mapping[str, ConfigProperty],
    baseline: Mapping[str, str] | None,
) -> ConfigChanges:
    """Properties new or changed since the baseline, plus deletions."""
    baseline = baseline or {}
    changes = [
        ConfigPropertyChange(
            path=path,
            value=prop.value,
            hash=prop.hash,
            base_hash=baseline.get(path),
        )
        for path, prop in sorted(local.items())
        if baseline.get(path) != prop.hash
    ]
    deletions = [
        ConfigPropertyDeletion(path=path, base_hash=base)
        for path, base in sorted(baseline.items())
        if path not in local
    ]
    return ConfigChanges(changes=tuple(changes), deletions=tuple(deletions))


# ---------------------------------------------------------------------------
# Write-back
# ---------------------------------------------------------------------------


def _parse_value(value_json: str) -> Any:
    try:
        return json.loads(value_json)
    except ValueError:
        return value_json


def _set_nested(root: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = root
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def _delete_nested(root: dict[str, Any], path: str) -> None:
    if path in root:
        del root[path]
        return
    parts = path.split(".")
    current: Any = root
    for part in parts[:-1]:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def apply_config_changes(
    original_json: str | None,
    to_write: Mapping[str, str],
    to_delete: Iterable[str] = (),
) -> str:
    """Apply property writes and deletions to config file text.

    Existing top-level keys keep their order.  A dotted path that is not
    an existing top-level key creates nested objects as needed.

    Args:
        original_json: Current file text (``None`` or blank for a new file).
        to_write: Path -> JSON value text.
        to_delete: Paths to remove.

    Returns:
        The new file text, indented with two spaces.

    Raises:
        ValueError: If *original_json* is not a JSON object.
    """
    root: dict[str, Any] = {}
    if original_json and original_json.strip():
        parsed = json.loads(original_json)
        if not isinstance(parsed, dict):
            raise ValueError("Config file root is not a JSON object")
        root = parsed

    for path in to_delete:
        _delete_nested(root, path)
    for path, value_json in to_write.items():
        if path in root:
            root[path] = _parse_value(value_json)
        else:
            _set_nested(root, path, _parse_value(value_json))

    return json.dumps(root, indent=2, ensure_ascii=False) + "\n"


def build_config_json(properties: Mapping[str, str]) -> str:
    """Build a config file from scratch out of path -> JSON value text."""
    return apply_config_changes(None, properties)
