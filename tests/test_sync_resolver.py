"""Tests for sync conflict resolver strategies."""

from __future__ import annotations

import pytest

from lrm_sync.sync.models import (
    ConfigConflict,
    ConflictType,
    EntryConflict,
    ResolutionChoice,
    ResolutionTarget,
)
from lrm_sync.sync.resolver import (
    AbortResolver,
    DeferredResolver,
    LocalWinsResolver,
    RemoteWinsResolver,
    collect_resolutions,
    create_resolver,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _entry_conflict(key: str = "Greeting", lang: str = "en") -> EntryConflict:
    """Build a minimal EntryConflict for testing."""
    return EntryConflict(
        key=key,
        lang=lang,
        type=ConflictType.BOTH_MODIFIED,
        local_value="Hello there",
        remote_value="Hi",
    )


def _config_conflict(path: str = "defaultLanguage") -> ConfigConflict:
    return ConfigConflict(
        path=path,
        type=ConflictType.BOTH_MODIFIED,
        local_value='"en"',
        remote_value='"fr"',
    )


# ---------------------------------------------------------------------------
# Simple resolvers
# ---------------------------------------------------------------------------


class TestLocalWinsResolver:
    def test_entry(self) -> None:
        resolution = LocalWinsResolver().resolve(_entry_conflict())
        assert resolution.resolution == ResolutionChoice.LOCAL
        assert (resolution.key, resolution.lang) == ("Greeting", "en")
        assert resolution.target == ResolutionTarget.ENTRY

    def test_config(self) -> None:
        resolution = LocalWinsResolver().resolve(_config_conflict())
        assert resolution.key == "defaultLanguage"
        assert resolution.target == ResolutionTarget.CONFIG


class TestRemoteWinsResolver:
    def test_entry(self) -> None:
        resolution = RemoteWinsResolver().resolve(_entry_conflict())
        assert resolution.resolution == ResolutionChoice.REMOTE


class TestAbortResolver:
    def test_answers_skip(self) -> None:
        resolution = AbortResolver().resolve(_entry_conflict())
        assert resolution.resolution == ResolutionChoice.SKIP


class TestDeferredResolver:
    def test_resolves_nothing_and_records_pending(self) -> None:
        resolver = DeferredResolver()
        conflicts = [_entry_conflict(), _config_conflict()]
        assert collect_resolutions(resolver, conflicts) == []
        assert resolver.pending == conflicts

    def test_pending_holds_latest_batch_only(self) -> None:
        resolver = DeferredResolver()
        collect_resolutions(resolver, [_entry_conflict("A")])
        collect_resolutions(resolver, [_entry_conflict("B")])
        assert [c.key for c in resolver.pending] == ["B"]
        collect_resolutions(resolver, [])
        assert resolver.pending == []


class TestCollectResolutions:
    def test_one_resolution_per_conflict(self) -> None:
        resolutions = collect_resolutions(
            RemoteWinsResolver(),
            [_entry_conflict("A"), _entry_conflict("B", "fr")],
        )
        assert [(r.key, r.lang) for r in resolutions] == [
            ("A", "en"),
            ("B", "fr"),
        ]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateResolver:
    @pytest.mark.parametrize(
        "strategy, cls",
        [
            ("prompt", DeferredResolver),
            ("local", LocalWinsResolver),
            ("remote", RemoteWinsResolver),
            ("abort", AbortResolver),
        ],
    )
    def test_known_strategies(self, strategy, cls) -> None:
        assert isinstance(create_resolver(strategy), cls)

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            create_resolver("merge")

    def test_fresh_instance_each_call(self) -> None:
        assert create_resolver("prompt") is not create_resolver("prompt")
