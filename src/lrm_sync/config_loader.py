"""
YAML settings discovery for lrm_sync.

Settings live in ``.lrm/config.yml`` next to the sync state, with an
optional per-user file under ``$XDG_CONFIG_HOME/lrm_sync`` and an explicit
override through ``LRM_SYNC_CONFIG``.  Files may pull in fragments with
``!include`` and reference environment variables as ``${VAR}`` or
``${VAR:-default}``.

Usage:
    from lrm_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(project_dir)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LRM_SYNC_CONFIG"
PROJECT_CONFIG_NAMES = ("config.yml", "config.yaml")

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` / ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    none is given.  An unterminated ``${`` is kept as written.
    """

    def _expand(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        current = os.environ.get(name, "")
        if current:
            return current
        return fallback or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_recursive(node: Any) -> Any:
    """Expand environment references in every string of a YAML tree."""
    if isinstance(node, dict):
        return {key: _interpolate_recursive(item) for key, item in node.items()}
    if isinstance(node, list):
        return [_interpolate_recursive(item) for item in node]
    if isinstance(node, str):
        return interpolate_env_vars(node)
    return node


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """Safe YAML loader that also understands ``!include <path>``.

    ``!include`` is registered on this subclass only, so plain
    ``yaml.safe_load`` keeps rejecting it.
    """

    include_chain: tuple[Path, ...] = ()


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    source = Path(loader.name).resolve()
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = source.parent / target
    target = target.resolve()

    if target in loader.include_chain:
        cycle = " -> ".join(map(str, (*loader.include_chain, target)))
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.is_file():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {source})"
        )
    return _load_yaml_with_includes(
        target, _include_stack=[*loader.include_chain, target]
    )


IncludeLoader.add_constructor("!include", _construct_include)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse one YAML file, resolving ``!include`` relative to it."""
    path = Path(path).resolve()
    chain = tuple(_include_stack) if _include_stack else (path,)

    with open(path, encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = chain
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery and merge
# ---------------------------------------------------------------------------


def _user_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "lrm_sync" / "config.yml"


def discover_config_files(project_dir: Path | None = None) -> list[Path]:
    """Existing settings files, highest precedence first.

    Order: the ``LRM_SYNC_CONFIG`` file, ``<project>/.lrm/config.yml``,
    ``<project>/.lrm/config.yaml``, then the per-user file.

    Args:
        project_dir: Project root.  Defaults to the current directory.
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    state_dir = Path(project_dir or Path.cwd()) / ".lrm"
    candidates.extend(state_dir / name for name in PROJECT_CONFIG_NAMES)
    candidates.append(_user_config_path())

    return [path for path in candidates if path.exists()]


def load_hierarchical_config(
    project_dir: Path | None = None,
) -> dict[str, Any]:
    """Load every discovered settings file into one raw mapping.

    Lower-precedence files are applied first and a higher-precedence file
    replaces whole top-level sections (``remote``, ``sync``, ``logging``)
    rather than merging into them.  Environment references are expanded
    once the merge is done.

    Returns:
        The merged mapping, empty when no file exists.

    Raises:
        yaml.YAMLError, OSError, ValueError: If a file or one of its
            includes cannot be read.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files(project_dir)):
        logger.debug("Reading settings from %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Cannot read settings file %s: %s", path, e)
            raise
        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )
            continue
        merged.update(data)

    if not merged:
        logger.debug("No settings files found; using defaults")
    return _interpolate_recursive(merged)
