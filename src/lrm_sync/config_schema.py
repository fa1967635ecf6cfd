"""Unified configuration schema for lrm_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the remote sync API, the local sync behaviour, and logging.
Includes an adapter that produces the ``Config`` dataclass consumed by
the API client.

Usage:
    from lrm_sync.config_schema import (
        UnifiedConfig, build_config, to_client_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    client_config = to_client_config(unified, cli_overrides={"url": "https://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote sync API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(
        default=None, description="Sync API base URL"
    )
    project: str | None = Field(
        default=None, description="Remote project identifier"
    )
    api_key: str | None = Field(
        default=None, description="API key (sent as X-API-Key)"
    )
    access_token: str | None = Field(
        default=None,
        description="Bearer access token (takes precedence over api_key)",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    timeout: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Read timeout in seconds for sync API calls",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Local sync behaviour.

    Paths are relative to the project directory.
    """

    resources_dir: str = Field(
        default="Resources", description="Directory holding resource files"
    )
    state_dir: str = Field(
        default=".lrm", description="Directory holding sync-state.json"
    )
    backup_dir: str = Field(
        default=".lrm/pull-backups",
        description="Directory holding pull backup archives",
    )
    backup_enabled: bool = Field(
        default=True,
        description="Snapshot local files before destructive writes",
    )
    backup_retention: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Number of backup archives to keep (1-1000)",
    )
    conflict_strategy: Literal["prompt", "local", "remote", "abort"] = (
        Field(
            default="prompt",
            description="How unresolved conflicts are handled",
        )
    )
    default_language: str = Field(
        default="en", description="Language holding the source text"
    )
    backend: Literal["json"] = Field(
        default="json", description="Resource file backend"
    )
    config_file: str = Field(
        default="lrm.json",
        description="Project config file whose properties are synced",
    )
    sync_config: bool = Field(
        default=True,
        description="Include config file properties in pull/push",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    Unknown top-level sections are ignored with a warning.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(k for k in raw_data if k not in known)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", ", ".join(unknown)
        )

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known}
    )


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> client Config dataclass
# ---------------------------------------------------------------------------


def to_client_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass used by
    ``SyncApiClient``, applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > None

    CLI overrides dict keys: url, project, api_key, access_token,
    insecure, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports (config.py imports config_schema)
    from .config import Config

    overrides = cli_overrides or {}

    return Config(
        api_url=overrides.get("url") or unified.remote.url or "",
        project=overrides.get("project") or unified.remote.project or "",
        api_key=overrides.get("api_key") or unified.remote.api_key,
        access_token=overrides.get("access_token")
        or unified.remote.access_token,
        insecure=overrides.get("insecure", False)
        or unified.remote.insecure,
        debug=overrides.get("debug", False),
        timeout=unified.remote.timeout,
    )
