"""Resource backends: read and write localization files.

The sync engine only talks to the ``ResourceBackend`` protocol.  The
reference implementation, ``JsonResourceBackend``, stores one JSON object
per language:

* ``strings.json`` holds the default language, ``strings.<lang>.json``
  every other one.
* A value is a string, ``{"value": ..., "comment": ...}`` or
  ``{"plural": {"one": ..., "other": ...}, "comment": ...}``.

Duplicate keys are preserved on read (``object_pairs_hook``) so the
extractor can apply its first-occurrence-wins rule, and written back
unchanged when a file is regenerated.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel

from lrm_sync.file_handler import atomic_write_text, read_file_with_encoding
from lrm_sync.validators import validate_language_code

logger = logging.getLogger(__name__)


class LanguageInfo(BaseModel):
    """One language file of the project."""

    code: str
    path: Path
    is_default: bool = False

    model_config = {"frozen": True}


class ResourceEntry(BaseModel):
    key: str
    value: str = ""
    comment: str | None = None
    is_plural: bool = False
    plural_forms: dict[str, str] | None = None

    model_config = {"frozen": True}


class ResourceFile(BaseModel):
    """Parsed contents of one language file, in file order."""

    language: LanguageInfo
    entries: tuple[ResourceEntry, ...] = ()
    encoding: str = "utf-8"

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ResourceBackend(Protocol):
    """Protocol that all resource backends must satisfy."""

    name: str

    def discover_languages(self, directory: Path) -> list[LanguageInfo]:
        """Find the language files in *directory*, default first."""
        ...  # pragma: no cover

    def read(self, language: LanguageInfo) -> ResourceFile:
        """Parse one language file.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If the file is not in the backend's format.
        """
        ...  # pragma: no cover

    def write(
        self, resource_file: ResourceFile, path: Path | None = None
    ) -> None:
        """Write *resource_file* to *path* (default: its language path)."""
        ...  # pragma: no cover

    def new_language_path(
        self, directory: Path, code: str, is_default: bool
    ) -> Path:
        """Path a new language file gets, following the naming convention."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# JSON backend
# ---------------------------------------------------------------------------


class JsonResourceBackend:
    """Flat JSON resource files, one per language.

    Args:
        default_language: Code of the language stored in the base file.
        base_name: File name stem (``strings`` -> ``strings.json``).
    """

    name = "json"

    def __init__(
        self, default_language: str = "en", base_name: str = "strings"
    ) -> None:
        self.default_language = default_language
        self.base_name = base_name

    def new_language_path(
        self, directory: Path, code: str, is_default: bool
    ) -> Path:
        if is_default:
            return Path(directory) / f"{self.base_name}.json"
        return Path(directory) / f"{self.base_name}.{code}.json"

    def discover_languages(self, directory: Path) -> list[LanguageInfo]:
        directory = Path(directory)
        if not directory.is_dir():
            return []

        languages: list[LanguageInfo] = []
        default_path = directory / f"{self.base_name}.json"
        if default_path.is_file():
            languages.append(
                LanguageInfo(
                    code=self.default_language,
                    path=default_path,
                    is_default=True,
                )
            )

        prefix = f"{self.base_name}."
        for path in sorted(directory.glob(f"{self.base_name}.*.json")):
            code = path.name[len(prefix) : -len(".json")]
            valid, reason = validate_language_code(code)
            if not valid:
                logger.warning("Ignoring %s: %s", path.name, reason)
                continue
            if code == self.default_language:
                logger.warning(
                    "Ignoring %s: default language lives in %s",
                    path.name,
                    default_path.name,
                )
                continue
            languages.append(LanguageInfo(code=code, path=path))
        return languages

    def read(self, language: LanguageInfo) -> ResourceFile:
        content, encoding = read_file_with_encoding(language.path)
        if not content.strip():
            return ResourceFile(language=language, encoding=encoding)

        try:
            pairs = json.loads(content, object_pairs_hook=_PairList)
        except json.JSONDecodeError as e:
            raise ValueError(f"{language.path}: invalid JSON: {e}") from e
        if not isinstance(pairs, _PairList):
            raise ValueError(f"{language.path}: root must be a JSON object")

        entries: list[ResourceEntry] = []
        for key, raw in pairs:
            entry = self._parse_value(key, raw, language.path)
            if entry is not None:
                entries.append(entry)
        return ResourceFile(
            language=language, entries=tuple(entries), encoding=encoding
        )

    @staticmethod
    def _parse_value(
        key: str, raw: Any, path: Path
    ) -> ResourceEntry | None:
        if isinstance(raw, str):
            return ResourceEntry(key=key, value=raw)
        if isinstance(raw, _PairList):
            data = dict(raw)
            comment = data.get("comment")
            comment = comment if isinstance(comment, str) else None
            plural = data.get("plural")
            if isinstance(plural, _PairList):
                forms = {
                    str(cat): form
                    for cat, form in plural
                    if isinstance(form, str)
                }
                return ResourceEntry(
                    key=key,
                    comment=comment,
                    is_plural=True,
                    plural_forms=forms,
                )
            value = data.get("value")
            if isinstance(value, str):
                return ResourceEntry(key=key, value=value, comment=comment)
        logger.warning("%s: skipping unsupported value for %r", path, key)
        return None

    @staticmethod
    def _render_value(entry: ResourceEntry) -> Any:
        if entry.is_plural:
            value: dict[str, Any] = {"plural": dict(entry.plural_forms or {})}
            if entry.comment:
                value["comment"] = entry.comment
            return value
        if entry.comment:
            return {"value": entry.value, "comment": entry.comment}
        return entry.value

    def render(self, resource_file: ResourceFile) -> str:
        """Serialise a resource file.

        Entries are written in order, duplicate keys included, so keys the
        sync did not touch keep their exact place in the file.  Output
        matches ``json.dumps(..., indent=2)`` for files without duplicates.
        """
        if not resource_file.entries:
            return "{}\n"
        members = []
        for entry in resource_file.entries:
            body = json.dumps(
                self._render_value(entry), indent=2, ensure_ascii=False
            )
            body = body.replace("\n", "\n  ")
            members.append(
                f"  {json.dumps(entry.key, ensure_ascii=False)}: {body}"
            )
        return "{\n" + ",\n".join(members) + "\n}\n"

    def write(
        self, resource_file: ResourceFile, path: Path | None = None
    ) -> None:
        target = Path(path) if path is not None else resource_file.language.path
        text = self.render(resource_file)
        encoding = resource_file.encoding or "utf-8"
        try:
            text.encode(encoding)
        except (LookupError, UnicodeEncodeError):
            # Keep the detected encoding unless the new text does not fit it.
            encoding = "utf-8"
        atomic_write_text(target, text, encoding)


class _PairList(list):
    """JSON object kept as an ordered list of (key, value) pairs."""


def create_backend(name: str, default_language: str = "en") -> ResourceBackend:
    """Create a resource backend by name.

    Raises:
        ValueError: If the backend name is not recognised.
    """
    if name == "json":
        return JsonResourceBackend(default_language=default_language)
    raise ValueError(f"Unknown resource backend: '{name}'. Valid backends: ['json']")
