"""Shared pytest fixtures for lrm-sync tests."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest
from dotenv import load_dotenv

from lrm_sync.config import Config
from lrm_sync.config_schema import SyncConfig
from lrm_sync.errors import RemoteApiError
from lrm_sync.sync.hasher import entry_hash

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live sync API",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live sync API"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Remote payload helpers
# ---------------------------------------------------------------------------


def remote_entry(key: str, comment: str | None = None, **translations) -> dict:
    """Build one wire-format pull entry.

    ``translations`` maps lang -> value; hashes are computed the way the
    server computes them.
    """
    return {
        "key": key,
        "comment": comment,
        "isPlural": False,
        "translations": {
            lang: {
                "value": value,
                "comment": comment,
                "hash": entry_hash(value, comment),
                "updatedAt": "2025-01-01T00:00:00Z",
            }
            for lang, value in translations.items()
        },
    }


class FakeSyncClient:
    """In-memory stand-in for ``SyncApiClient``.

    Holds the remote entries in wire format and records every push.
    """

    def __init__(
        self,
        entries: list[dict] | None = None,
        config: dict | None = None,
    ) -> None:
        self.entries: list[dict] = entries or []
        self.config = config
        self.pushes: list[dict] = []
        self.push_response: dict | None = None
        self.pull_error: RemoteApiError | None = None
        self.pull_calls = 0

    def pull_all(self) -> dict:
        self.pull_calls += 1
        if self.pull_error is not None:
            raise self.pull_error
        payload: dict = {
            "entries": copy.deepcopy(self.entries),
            "total": len(self.entries),
            "hasMore": False,
        }
        if self.config is not None:
            payload["config"] = copy.deepcopy(self.config)
        return payload

    def push(self, payload: dict) -> dict:
        self.pushes.append(payload)
        if self.push_response is not None:
            return self.push_response
        return {
            "applied": len(payload.get("entries", [])),
            "deleted": len(payload.get("deletions", [])),
            "configApplied": "config" in payload,
            "conflicts": [],
            "newEntryHashes": {},
            "newConfigHashes": {},
        }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        api_url="https://lrm.example.com/api",
        project="demo",
        api_key="key-123",
        insecure=False,
    )


@pytest.fixture
def sync_settings():
    return SyncConfig(conflict_strategy="prompt")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Empty project with a Resources directory."""
    (tmp_path / "Resources").mkdir()
    return tmp_path


@pytest.fixture
def write_strings(project_dir: Path):
    """Factory fixture writing a JSON resource file for a language."""

    def _write(lang: str, data: dict, default_lang: str = "en") -> Path:
        name = "strings.json" if lang == default_lang else f"strings.{lang}.json"
        path = project_dir / "Resources" / name
        path.write_text(
            json.dumps(data, indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def fake_client():
    return FakeSyncClient()
