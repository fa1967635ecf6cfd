"""Write merge results back to the local resource files.

Every affected file is rendered into a staging directory next to the
resource files first, then moved into place one by one with
``os.replace()``.  A failure part-way leaves some files replaced; the
engine restores them from the pull backup.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from lrm_sync.sync.backend import (
    LanguageInfo,
    ResourceBackend,
    ResourceEntry,
    ResourceFile,
)
from lrm_sync.sync.models import MergedEntry, RegenerationResult

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".lrm-staging-"


def _to_resource_entry(entry: MergedEntry) -> ResourceEntry:
    return ResourceEntry(
        key=entry.key,
        value=entry.value,
        comment=entry.comment,
        is_plural=entry.is_plural,
        plural_forms=entry.plural_forms if entry.is_plural else None,
    )


class FileRegenerator:
    """Apply ``to_write`` / ``to_delete`` through a resource backend.

    Args:
        backend: Backend that reads and writes the files.
        resources_dir: Directory holding the resource files.
        default_language: Language stored in the backend's base file.
    """

    def __init__(
        self,
        backend: ResourceBackend,
        resources_dir: Path,
        default_language: str = "en",
    ) -> None:
        self.backend = backend
        self.resources_dir = Path(resources_dir)
        self.default_language = default_language

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _target_languages(
        self,
        to_write: Iterable[MergedEntry],
        to_delete: Iterable[tuple[str, str]],
        languages: Iterable[LanguageInfo],
    ) -> tuple[dict[str, LanguageInfo], set[str]]:
        """Language files to touch, and which of them are new."""
        known = {language.code: language for language in languages}
        write_langs = {entry.lang for entry in to_write}
        delete_langs = {lang for _, lang in to_delete}

        targets: dict[str, LanguageInfo] = {}
        created: set[str] = set()
        for code in sorted(write_langs | delete_langs):
            if code in known:
                targets[code] = known[code]
            elif code in write_langs:
                is_default = code == self.default_language
                targets[code] = LanguageInfo(
                    code=code,
                    path=self.backend.new_language_path(
                        self.resources_dir, code, is_default
                    ),
                    is_default=is_default,
                )
                created.add(code)
        return targets, created

    def planned_paths(
        self,
        to_write: Iterable[MergedEntry],
        languages: Iterable[LanguageInfo],
        to_delete: Iterable[tuple[str, str]] = (),
    ) -> list[Path]:
        """Every file a regeneration with these inputs may touch."""
        targets, _ = self._target_languages(
            list(to_write), list(to_delete), languages
        )
        return [language.path for language in targets.values()]

    # ------------------------------------------------------------------
    # Regeneration
    # ------------------------------------------------------------------

    def _updated_entries(
        self,
        existing: tuple[ResourceEntry, ...],
        writes: dict[str, MergedEntry],
        deletes: set[str],
    ) -> list[ResourceEntry]:
        result: list[ResourceEntry] = []
        replaced: set[str] = set()
        for item in existing:
            if item.key in deletes:
                continue
            if item.key in writes and item.key not in replaced:
                result.append(_to_resource_entry(writes[item.key]))
                replaced.add(item.key)
                continue
            result.append(item)
        for key in sorted(set(writes) - replaced):
            result.append(_to_resource_entry(writes[key]))
        return result

    def regenerate(
        self,
        to_write: Iterable[MergedEntry],
        to_delete: Iterable[tuple[str, str]],
        languages: Iterable[LanguageInfo],
    ) -> RegenerationResult:
        """Write merged entries and remove deleted ones.

        Existing entry order is preserved; new keys are appended sorted.
        I/O and format errors are reported in the result, never raised.

        Args:
            to_write: Entries to add or replace.
            to_delete: (key, lang) pairs to remove.
            languages: Language files currently on disk.

        Returns:
            ``RegenerationResult``; ``written_files`` lists the files
            already moved into place when a failure happened.
        """
        to_write = list(to_write)
        to_delete = list(to_delete)
        writes_by_lang: dict[str, dict[str, MergedEntry]] = defaultdict(dict)
        for entry in to_write:
            writes_by_lang[entry.lang][entry.key] = entry
        deletes_by_lang: dict[str, set[str]] = defaultdict(set)
        for key, lang in to_delete:
            deletes_by_lang[lang].add(key)

        targets, created = self._target_languages(
            to_write, to_delete, languages
        )
        if not targets:
            return RegenerationResult(success=True)

        written: list[str] = []
        updated_files: list[str] = []
        created_files: list[str] = []
        deleted_entries = 0
        staging: Path | None = None
        try:
            self.resources_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(
                tempfile.mkdtemp(
                    prefix=STAGING_PREFIX, dir=str(self.resources_dir)
                )
            )

            staged: list[tuple[Path, Path, str]] = []
            for code, language in targets.items():
                if code in created or not language.path.exists():
                    current = ResourceFile(language=language)
                else:
                    current = self.backend.read(language)
                deletes = deletes_by_lang.get(code, set())
                deleted_entries += sum(
                    1 for item in current.entries if item.key in deletes
                )
                entries = self._updated_entries(
                    current.entries, writes_by_lang.get(code, {}), deletes
                )
                staged_path = staging / f"{len(staged)}-{language.path.name}"
                self.backend.write(
                    current.model_copy(update={"entries": tuple(entries)}),
                    staged_path,
                )
                staged.append((staged_path, language.path, code))

            for staged_path, final_path, code in staged:
                final_path.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staged_path, final_path)
                written.append(str(final_path))
                if code in created:
                    created_files.append(str(final_path))
                else:
                    updated_files.append(str(final_path))
        except (OSError, ValueError) as e:
            logger.error("Regeneration failed: %s", e)
            return RegenerationResult(
                success=False,
                error=str(e),
                updated_files=tuple(updated_files),
                created_files=tuple(created_files),
                written_files=tuple(written),
            )
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "Regenerated %d files (%d created), removed %d entries",
            len(written),
            len(created_files),
            deleted_entries,
        )
        return RegenerationResult(
            success=True,
            updated_files=tuple(updated_files),
            created_files=tuple(created_files),
            deleted_entries=deleted_entries,
            written_files=tuple(written),
        )
