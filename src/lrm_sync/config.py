"""Configuration for the remote sync API client.

Reads connection settings from CLI args, environment variables, .env
files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    LRM_API_URL: Sync API base URL (required)
    LRM_PROJECT: Remote project identifier (required)
    LRM_API_KEY: API key (one of LRM_API_KEY / LRM_ACCESS_TOKEN required)
    LRM_ACCESS_TOKEN: Bearer token, preferred over the API key when both are set
    LRM_INSECURE: Skip SSL verification (optional, default: false)
    LRM_DEBUG: Enable debug logging (optional, default: false)
    LRM_TIMEOUT: Read timeout in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from dotenv import load_dotenv

from .config_loader import load_hierarchical_config
from .config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)


@dataclass
class Config:
    api_url: str
    project: str
    api_key: str | None = None
    access_token: str | None = None
    insecure: bool = False
    debug: bool = False
    timeout: float = 60.0


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid, the project is empty, or
            no credential is configured.
    """
    # Normalize URL: strip whitespace
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    # Strip trailing slash after validation (safe now that scheme/host are verified)
    config.api_url = config.api_url.removesuffix("/")

    if not config.project.strip():
        raise ValueError(
            "Project cannot be empty. Set LRM_PROJECT environment variable."
        )

    if not (config.api_key or config.access_token):
        raise ValueError(
            "No credentials configured. Set LRM_API_KEY or LRM_ACCESS_TOKEN."
        )

    if not 0 < config.timeout <= 600:
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be between 0 and 600 seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    url: str | None = None,
    project: str | None = None,
    api_key: str | None = None,
    access_token: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override API URL.
        project: Override project identifier.
        api_key: Override API key.
        access_token: Override bearer token.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``remote``
            section.  Used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config is missing after checking all
            sources, or a value is malformed.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    api_url = url or os.getenv("LRM_API_URL") or fb.get("url")
    if not api_url:
        raise ValueError(
            "API URL not found. Set LRM_API_URL environment variable, "
            "pass --url CLI argument, or add 'url' to the remote section of config.yml."
        )

    final_project = project or os.getenv("LRM_PROJECT") or fb.get("project")
    if not final_project:
        raise ValueError(
            "Project not found. Set LRM_PROJECT environment variable, "
            "pass --project CLI argument, or add 'project' to config.yml."
        )

    final_api_key = api_key or os.getenv("LRM_API_KEY") or fb.get("api_key")
    final_token = (
        access_token
        or os.getenv("LRM_ACCESS_TOKEN")
        or fb.get("access_token")
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("LRM_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("LRM_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("LRM_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid LRM_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout" in fb:
        final_timeout = float(fb["timeout"])
    else:
        final_timeout = 60.0

    config = Config(
        api_url=api_url,
        project=final_project.strip(),
        api_key=final_api_key.strip() if final_api_key else None,
        access_token=final_token.strip() if final_token else None,
        insecure=final_insecure,
        debug=final_debug,
        timeout=final_timeout,
    )

    validate_config(config)

    return config


def load_settings(
    cli_overrides: dict | None = None,
) -> tuple[UnifiedConfig, Config]:
    """Load the YAML hierarchy, .env and environment in one call.

    Args:
        cli_overrides: Optional dict with keys url, project, api_key,
            access_token, insecure, debug.

    Returns:
        Tuple of (unified config, validated client config).
    """
    load_dotenv()
    unified = build_config(load_hierarchical_config())
    overrides = cli_overrides or {}

    client_config = load_config(
        url=overrides.get("url"),
        project=overrides.get("project"),
        api_key=overrides.get("api_key"),
        access_token=overrides.get("access_token"),
        insecure=bool(overrides.get("insecure", False)),
        debug=bool(overrides.get("debug", False)),
        yaml_fallbacks=unified.remote.model_dump(exclude_none=True),
    )
    return unified, client_config
