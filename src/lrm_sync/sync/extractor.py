"""Read local resource files into hashed sync entries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from lrm_sync.sync.backend import LanguageInfo, ResourceBackend, ResourceFile
from lrm_sync.sync.hasher import entry_hash, plural_hash
from lrm_sync.sync.models import LocalEntry
from lrm_sync.validators import validate_entry_key

logger = logging.getLogger(__name__)


def to_local_entries(resource_file: ResourceFile) -> list[LocalEntry]:
    """Flatten one resource file; the first occurrence of a key wins."""
    lang = resource_file.language.code
    seen: set[str] = set()
    entries: list[LocalEntry] = []
    for item in resource_file.entries:
        valid, reason = validate_entry_key(item.key)
        if not valid:
            logger.warning(
                "%s: skipping entry: %s", resource_file.language.path, reason
            )
            continue
        if item.key in seen:
            logger.debug(
                "%s: duplicate key %r; first occurrence wins",
                resource_file.language.path,
                item.key,
            )
            continue
        seen.add(item.key)
        if item.is_plural:
            hash_ = plural_hash(item.plural_forms, item.comment)
        else:
            hash_ = entry_hash(item.value, item.comment)
        entries.append(
            LocalEntry(
                key=item.key,
                lang=lang,
                value=item.value,
                hash=hash_,
                comment=item.comment,
                is_plural=item.is_plural,
                plural_forms=item.plural_forms if item.is_plural else None,
            )
        )
    return entries


class LocalEntryExtractor:
    """Extract ``LocalEntry`` records through a resource backend.

    Args:
        backend: Backend that parses the resource files.
        resources_dir: Directory holding the resource files.
    """

    def __init__(self, backend: ResourceBackend, resources_dir: Path) -> None:
        self.backend = backend
        self.resources_dir = Path(resources_dir)

    def languages(self) -> list[LanguageInfo]:
        return self.backend.discover_languages(self.resources_dir)

    def _files(
        self, languages: Iterable[LanguageInfo] | None
    ) -> list[ResourceFile]:
        if languages is None:
            languages = self.languages()
        return [self.backend.read(language) for language in languages]

    def extract_entries(
        self, languages: Iterable[LanguageInfo] | None = None
    ) -> list[LocalEntry]:
        """All local entries, in language then file order.

        Raises:
            OSError, ValueError: If a resource file cannot be read or
                parsed.
        """
        entries: list[LocalEntry] = []
        for resource_file in self._files(languages):
            entries.extend(to_local_entries(resource_file))
        logger.debug("Extracted %d local entries", len(entries))
        return entries

    def extract_index(
        self, languages: Iterable[LanguageInfo] | None = None
    ) -> dict[tuple[str, str], LocalEntry]:
        """Local entries keyed by (key, lang)."""
        return {
            (entry.key, entry.lang): entry
            for entry in self.extract_entries(languages)
        }

    def extract_by_key(
        self, languages: Iterable[LanguageInfo] | None = None
    ) -> dict[str, dict[str, LocalEntry]]:
        """Local entries grouped key -> lang -> entry."""
        grouped: dict[str, dict[str, LocalEntry]] = {}
        for entry in self.extract_entries(languages):
            grouped.setdefault(entry.key, {})[entry.lang] = entry
        return grouped

    def extract_by_file(
        self,
        project_dir: Path,
        languages: Iterable[LanguageInfo] | None = None,
    ) -> dict[str, tuple[bytes, list[LocalEntry]]]:
        """Project-relative path -> (raw bytes, entries) for every file.

        Used to migrate version 1 state, which hashed whole files.
        """
        result: dict[str, tuple[bytes, list[LocalEntry]]] = {}
        for resource_file in self._files(languages):
            path = resource_file.language.path
            try:
                rel = path.resolve().relative_to(Path(project_dir).resolve())
            except ValueError:
                rel = Path(path.name)
            result[rel.as_posix()] = (
                path.read_bytes(),
                to_local_entries(resource_file),
            )
        return result
