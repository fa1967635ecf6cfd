"""Wire-format mapping for the remote sync API.

Converts pull responses into ``RemoteEntry`` / ``ConfigProperty`` records
and push changes into request bodies.  Structurally broken items are
skipped one by one with a warning; they never abort the batch.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from lrm_sync.errors import RemoteApiError
from lrm_sync.sync.config_merger import canonical_json, make_property
from lrm_sync.sync.hasher import config_hash, entry_hash, plural_hash
from lrm_sync.sync.models import (
    ConfigChanges,
    ConfigProperty,
    ConflictType,
    EntryConflict,
    PushChanges,
    RemoteEntry,
)

logger = logging.getLogger(__name__)

# Numeric enum values some servers emit instead of names.
_CONFLICT_TYPES_BY_INDEX = {
    0: ConflictType.BOTH_MODIFIED,
    1: ConflictType.DELETED_LOCALLY_MODIFIED_REMOTELY,
    2: ConflictType.DELETED_REMOTELY_MODIFIED_LOCALLY,
}


class PullData(BaseModel):
    """Flattened pull response.

    ``config`` is ``None`` when the server sent no config block.
    """

    entries: tuple[RemoteEntry, ...] = ()
    config: dict[str, ConfigProperty] | None = None
    warnings: tuple[str, ...] = ()

    model_config = {"frozen": True}


class PushResponse(BaseModel):
    """Decoded push response."""

    applied: int = 0
    deleted: int = 0
    config_applied: bool = False
    conflicts: tuple[EntryConflict, ...] = ()
    new_entry_hashes: dict[str, dict[str, str]] = Field(default_factory=dict)
    new_config_hashes: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _plural_forms(value: Any) -> dict[str, str] | None:
    if not isinstance(value, dict):
        return None
    return {
        str(cat): form for cat, form in value.items() if isinstance(form, str)
    }


def _config_property(
    path: str, value: str, hash_: str | None
) -> ConfigProperty:
    """Bring a remote config value into the canonical form local values use.

    Some clients store the raw file text of a property and hash that, so
    an object value such as ``{ "a": 1 }`` would never compare equal to
    the local canonical ``{"a":1}``.  Such values are canonicalised and
    rehashed; values that are not JSON are kept as sent.
    """
    try:
        canonical = canonical_json(json.loads(value))
    except ValueError:
        logger.debug("Remote config property %s is not JSON", path)
        canonical = value
    if canonical != value:
        logger.debug("Canonicalised remote config property %s", path)
        return make_property(canonical)
    return ConfigProperty(value=value, hash=hash_ or config_hash(value))


def parse_pull_payload(payload: dict[str, Any]) -> PullData:
    """Flatten a pull response into per-(key, lang) remote entries.

    Keys and languages are passed through as given (possibly empty); the
    merger validates and skips them.  Items that are not objects, or whose
    translation is not an object, are dropped here with a warning.

    Args:
        payload: Decoded JSON body of ``GET .../sync/pull``.

    Returns:
        ``PullData`` with entries, config properties and warnings.
    """
    warnings: list[str] = []
    entries: list[RemoteEntry] = []

    raw_entries = payload.get("entries") or []
    if not isinstance(raw_entries, list):
        raise RemoteApiError("Pull response 'entries' is not a list")

    for index, item in enumerate(raw_entries):
        if not isinstance(item, dict):
            warnings.append(f"Skipped remote entry #{index}: not an object")
            continue
        key = item.get("key") if isinstance(item.get("key"), str) else ""
        entry_comment = _opt_str(item.get("comment"))
        is_plural = bool(item.get("isPlural", False))
        translations = item.get("translations") or {}
        if not isinstance(translations, dict):
            warnings.append(
                f"Skipped remote entry '{key}': translations is not an object"
            )
            continue
        for lang, data in translations.items():
            if not isinstance(data, dict):
                warnings.append(
                    f"Skipped remote entry '{key}' [{lang}]: "
                    "translation is not an object"
                )
                continue
            comment = _opt_str(data.get("comment"))
            if comment is None:
                comment = entry_comment
            forms = _plural_forms(data.get("pluralForms"))
            value = _opt_str(data.get("value")) or ""
            hash_ = _opt_str(data.get("hash"))
            if not hash_:
                hash_ = (
                    plural_hash(forms, comment)
                    if is_plural
                    else entry_hash(value, comment)
                )
                logger.debug(
                    "Remote entry %s [%s] has no hash; computed locally",
                    key,
                    lang,
                )
            entries.append(
                RemoteEntry(
                    key=key,
                    lang=str(lang),
                    value=value,
                    hash=hash_,
                    updated_at=_opt_str(data.get("updatedAt")),
                    comment=comment,
                    is_plural=is_plural,
                    plural_forms=forms if is_plural else None,
                )
            )

    config: dict[str, ConfigProperty] | None = None
    raw_config = payload.get("config")
    properties = (
        raw_config.get("properties") if isinstance(raw_config, dict) else None
    )
    if isinstance(properties, dict):
        config = {}
        for path, prop in properties.items():
            if not isinstance(prop, dict) or not isinstance(
                prop.get("value"), str
            ):
                warnings.append(f"Skipped remote config property '{path}'")
                continue
            config[path] = _config_property(
                path, prop["value"], _opt_str(prop.get("hash"))
            )

    for message in warnings:
        logger.warning(message)
    return PullData(
        entries=tuple(entries), config=config, warnings=tuple(warnings)
    )


def build_push_payload(
    changes: PushChanges,
    config_changes: ConfigChanges | None = None,
    message: str | None = None,
) -> dict[str, Any]:
    """Build the JSON body for ``POST .../sync/push``."""
    body: dict[str, Any] = {
        "entries": [
            change.model_dump(by_alias=True, exclude_none=True)
            for change in (*changes.additions, *changes.modifications)
        ],
        "deletions": [
            deletion.model_dump(by_alias=True)
            for deletion in changes.deletions
        ],
    }
    if config_changes is not None and config_changes.has_changes:
        body["config"] = {
            "changes": [
                c.model_dump(by_alias=True, exclude_none=True)
                for c in config_changes.changes
            ],
            "deletions": [
                d.model_dump(by_alias=True) for d in config_changes.deletions
            ],
        }
    if message:
        body["message"] = message
    return body


def _conflict_type(raw: Any) -> ConflictType:
    if isinstance(raw, int):
        return _CONFLICT_TYPES_BY_INDEX.get(raw, ConflictType.BOTH_MODIFIED)
    try:
        return ConflictType(raw)
    except ValueError:
        return ConflictType.BOTH_MODIFIED


def parse_push_response(payload: dict[str, Any]) -> PushResponse:
    """Decode a push response, tolerating missing fields."""
    conflicts: list[EntryConflict] = []
    for item in payload.get("conflicts") or []:
        if not isinstance(item, dict) or not isinstance(item.get("key"), str):
            logger.warning("Ignoring malformed push conflict: %r", item)
            continue
        conflicts.append(
            EntryConflict(
                key=item["key"],
                lang=_opt_str(item.get("lang")) or "",
                type=_conflict_type(item.get("type")),
                local_value=_opt_str(item.get("localValue")),
                remote_value=_opt_str(item.get("remoteValue")),
                remote_hash=_opt_str(item.get("remoteHash")),
                remote_updated_at=_opt_str(item.get("remoteUpdatedAt")),
            )
        )

    entry_hashes: dict[str, dict[str, str]] = {}
    raw_hashes = payload.get("newEntryHashes")
    if isinstance(raw_hashes, dict):
        for key, langs in raw_hashes.items():
            if isinstance(langs, dict):
                entry_hashes[key] = {
                    lang: h for lang, h in langs.items() if isinstance(h, str)
                }

    raw_config_hashes = payload.get("newConfigHashes")
    config_hashes = (
        {p: h for p, h in raw_config_hashes.items() if isinstance(h, str)}
        if isinstance(raw_config_hashes, dict)
        else {}
    )

    return PushResponse(
        applied=int(payload.get("applied") or 0),
        deleted=int(payload.get("deleted") or 0),
        config_applied=bool(payload.get("configApplied", False)),
        conflicts=tuple(conflicts),
        new_entry_hashes=entry_hashes,
        new_config_hashes=config_hashes,
    )
