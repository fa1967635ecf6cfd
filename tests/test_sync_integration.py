"""Integration tests: two projects syncing through one in-memory server.

The fake server keeps the authoritative entries and rejects pushes whose
base hashes are stale, the way the real service does, so these tests
exercise pull and push against each other end to end.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path

import pytest

from lrm_sync.config_schema import SyncConfig
from lrm_sync.sync.engine import SyncEngine
from lrm_sync.sync.models import ConflictResolution, SyncStatus
from lrm_sync.sync.state import SyncStateStore

# ===================================================================
# In-memory server
# ===================================================================


class InMemorySyncServer:
    """Stateful stand-in for the sync API shared by several projects."""

    def __init__(self) -> None:
        self.entries: dict[str, dict] = {}
        self.properties: dict[str, dict] = {}
        self.clock = 0

    def _tick(self) -> str:
        self.clock += 1
        return f"2025-01-01T00:00:{self.clock:02d}Z"

    def _current_hash(self, key: str, lang: str) -> str | None:
        translation = self.entries.get(key, {}).get("translations", {}).get(lang)
        return translation["hash"] if translation else None

    def pull_all(self) -> dict:
        return {
            "entries": copy.deepcopy(list(self.entries.values())),
            "config": {"properties": copy.deepcopy(self.properties)},
            "total": len(self.entries),
            "hasMore": False,
        }

    def push(self, payload: dict) -> dict:
        conflicts = []
        for change in payload.get("entries", []):
            current = self._current_hash(change["key"], change["lang"])
            if change.get("baseHash") != current:
                conflicts.append(
                    {
                        "key": change["key"],
                        "lang": change["lang"],
                        "type": "BothModified",
                        "localValue": change["value"],
                        "remoteValue": self.entries[change["key"]][
                            "translations"
                        ][change["lang"]]["value"]
                        if current
                        else None,
                        "remoteHash": current,
                    }
                )
        for deletion in payload.get("deletions", []):
            current = self._current_hash(deletion["key"], deletion["lang"])
            if current is not None and deletion["baseHash"] != current:
                conflicts.append(
                    {
                        "key": deletion["key"],
                        "lang": deletion["lang"],
                        "type": "DeletedLocallyModifiedRemotely",
                        "remoteHash": current,
                    }
                )
        if conflicts:
            return {"applied": 0, "deleted": 0, "conflicts": conflicts}

        applied = 0
        for change in payload.get("entries", []):
            entry = self.entries.setdefault(
                change["key"],
                {"key": change["key"], "isPlural": False, "translations": {}},
            )
            entry["isPlural"] = change.get("isPlural", False)
            entry["translations"][change["lang"]] = {
                "value": change["value"],
                "comment": change.get("comment"),
                "hash": change["hash"],
                "updatedAt": self._tick(),
                "pluralForms": change.get("pluralForms"),
            }
            applied += 1

        deleted = 0
        for deletion in payload.get("deletions", []):
            entry = self.entries.get(deletion["key"])
            if entry and entry["translations"].pop(deletion["lang"], None):
                deleted += 1
                if not entry["translations"]:
                    del self.entries[deletion["key"]]

        config = payload.get("config")
        if config:
            for change in config["changes"]:
                self.properties[change["path"]] = {
                    "value": change["value"],
                    "hash": change["hash"],
                }
            for deletion in config["deletions"]:
                self.properties.pop(deletion["path"], None)

        return {
            "applied": applied,
            "deleted": deleted,
            "configApplied": bool(config),
            "conflicts": [],
        }


# ===================================================================
# Helpers
# ===================================================================


def _project(root: Path, name: str) -> Path:
    project = root / name
    (project / "Resources").mkdir(parents=True)
    return project


def _write(project: Path, lang: str | None, data: dict) -> None:
    name = "strings.json" if lang is None else f"strings.{lang}.json"
    (project / "Resources" / name).write_text(
        json.dumps(data, indent=2) + "\n", encoding="utf-8"
    )


def _read(project: Path, lang: str | None = None) -> dict:
    name = "strings.json" if lang is None else f"strings.{lang}.json"
    return json.loads((project / "Resources" / name).read_text("utf-8"))


@pytest.fixture
def server() -> InMemorySyncServer:
    return InMemorySyncServer()


@pytest.fixture
def alice(tmp_path, server) -> SyncEngine:
    return SyncEngine(server, SyncConfig(), _project(tmp_path, "alice"))


@pytest.fixture
def bob(tmp_path, server) -> SyncEngine:
    return SyncEngine(server, SyncConfig(), _project(tmp_path, "bob"))


@pytest.fixture
def shared(alice, bob):
    """Both projects synced to the same two-language content."""
    _write(alice.project_dir, None, {"Greeting": "Hello", "Bye": "Bye"})
    _write(alice.project_dir, "fr", {"Greeting": "Bonjour"})
    assert alice.push().status == SyncStatus.APPLIED
    assert bob.pull().status == SyncStatus.APPLIED
    return alice, bob


# ===================================================================
# Round trips
# ===================================================================


class TestRoundTrip:
    def test_push_then_pull_into_second_project(self, shared):
        alice, bob = shared
        assert _read(bob.project_dir) == {"Greeting": "Hello", "Bye": "Bye"}
        assert _read(bob.project_dir, "fr") == {"Greeting": "Bonjour"}
        assert (
            SyncStateStore(bob.project_dir).load().state.entries
            == SyncStateStore(alice.project_dir).load().state.entries
        )

    def test_remote_edit_auto_merges(self, shared):
        alice, bob = shared
        _write(bob.project_dir, None, {"Greeting": "Hi", "Bye": "Bye"})
        assert bob.push().status == SyncStatus.APPLIED

        report = alice.pull()

        assert report.status == SyncStatus.APPLIED
        assert report.auto_merged == 1
        assert _read(alice.project_dir)["Greeting"] == "Hi"
        assert alice.push().status == SyncStatus.UP_TO_DATE

    def test_independent_edits_merge(self, shared):
        alice, bob = shared
        _write(alice.project_dir, None, {"Greeting": "Hello", "Bye": "Ciao"})
        _write(bob.project_dir, "fr", {"Greeting": "Salut"})
        assert bob.push().status == SyncStatus.APPLIED

        # Alice's own edit survives the pull and is pushed afterwards.
        assert alice.pull().status == SyncStatus.APPLIED
        assert _read(alice.project_dir)["Bye"] == "Ciao"
        assert _read(alice.project_dir, "fr")["Greeting"] == "Salut"
        assert alice.push().status == SyncStatus.APPLIED

        assert bob.pull().status == SyncStatus.APPLIED
        assert _read(bob.project_dir)["Bye"] == "Ciao"

    def test_deletion_propagates(self, shared):
        alice, bob = shared
        _write(alice.project_dir, None, {"Greeting": "Hello"})
        report = alice.push()
        assert report.deletions == 1

        assert bob.pull().deleted == 1
        assert _read(bob.project_dir) == {"Greeting": "Hello"}

    def test_config_round_trip(self, alice, bob):
        (alice.project_dir / "lrm.json").write_text(
            '{"defaultLanguage": "en", "translation": {"provider": "deepl"}}'
        )
        assert alice.push().config_applied
        bob.pull()
        assert json.loads((bob.project_dir / "lrm.json").read_text()) == {
            "defaultLanguage": "en",
            "translation": {"provider": "deepl"},
        }


class TestConcurrentEdits:
    def test_stale_push_rejected_then_resolved(self, shared):
        alice, bob = shared
        _write(bob.project_dir, None, {"Greeting": "Hi", "Bye": "Bye"})
        assert bob.push().status == SyncStatus.APPLIED
        _write(alice.project_dir, None, {"Greeting": "Hey", "Bye": "Bye"})

        rejected = alice.push()
        assert rejected.status == SyncStatus.CONFLICTS
        assert rejected.conflicts[0].remote_value == "Hi"

        pulled = alice.pull()
        assert pulled.status == SyncStatus.CONFLICTS
        assert [(c.local_value, c.remote_value) for c in pulled.conflicts] == [
            ("Hey", "Hi")
        ]

        resolved = alice.pull(
            resolutions=[
                ConflictResolution(
                    key="Greeting", lang="en", resolution="Remote"
                )
            ]
        )
        assert resolved.status == SyncStatus.APPLIED
        assert _read(alice.project_dir)["Greeting"] == "Hi"
        assert alice.push().status == SyncStatus.UP_TO_DATE


# ===================================================================
# Live API end-to-end (gated by --run-live)
# ===================================================================


@pytest.mark.live
class TestLiveEndToEnd:
    """Read-only checks against a real sync API.

    These tests require ``--run-live`` and LRM_API_URL / LRM_PROJECT plus
    a credential in the environment or ``.env``.
    """

    @pytest.fixture
    def live_client(self):
        from lrm_sync.config import load_config
        from lrm_sync.core.client import SyncApiClient

        if not os.environ.get("LRM_API_URL"):
            pytest.skip("LRM_API_URL not set")
        return SyncApiClient(load_config())

    def test_pull_first_page(self, live_client):
        page = live_client.pull(limit=5)
        assert isinstance(page.get("entries", []), list)

    def test_dry_run_pull(self, live_client, tmp_path):
        (tmp_path / "Resources").mkdir()
        engine = SyncEngine(live_client, SyncConfig(), tmp_path)
        report = engine.pull(dry_run=True)
        assert report.status in (SyncStatus.DRY_RUN, SyncStatus.UP_TO_DATE)
        assert not (tmp_path / ".lrm").exists()
