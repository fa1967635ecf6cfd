"""Tests for local entry extraction."""

from __future__ import annotations

from lrm_sync.sync.backend import (
    JsonResourceBackend,
    LanguageInfo,
    ResourceEntry,
    ResourceFile,
)
from lrm_sync.sync.extractor import LocalEntryExtractor, to_local_entries
from lrm_sync.sync.hasher import entry_hash, file_hash, plural_hash


def _extractor(project_dir) -> LocalEntryExtractor:
    return LocalEntryExtractor(
        JsonResourceBackend(), project_dir / "Resources"
    )


class TestToLocalEntries:
    def _file(self, *entries: ResourceEntry) -> ResourceFile:
        return ResourceFile(
            language=LanguageInfo(code="fr", path="strings.fr.json"),
            entries=entries,
        )

    def test_hashes_value_and_comment(self):
        [entry] = to_local_entries(
            self._file(ResourceEntry(key="A", value="a", comment="c"))
        )
        assert entry.lang == "fr"
        assert entry.hash == entry_hash("a", "c")

    def test_plural_hash(self):
        forms = {"other": "n", "one": "1"}
        [entry] = to_local_entries(
            self._file(
                ResourceEntry(key="P", is_plural=True, plural_forms=forms)
            )
        )
        assert entry.hash == plural_hash(forms)
        assert entry.plural_forms == forms

    def test_first_occurrence_wins(self):
        entries = to_local_entries(
            self._file(
                ResourceEntry(key="A", value="first"),
                ResourceEntry(key="A", value="second"),
            )
        )
        assert [e.value for e in entries] == ["first"]

    def test_invalid_key_skipped(self):
        entries = to_local_entries(
            self._file(
                ResourceEntry(key="  ", value="x"),
                ResourceEntry(key="Ok", value="y"),
            )
        )
        assert [e.key for e in entries] == ["Ok"]


class TestLocalEntryExtractor:
    def test_extract_entries(self, project_dir, write_strings):
        write_strings("en", {"Greeting": "Hello", "Bye": "Bye"})
        write_strings("fr", {"Greeting": "Bonjour"})
        entries = _extractor(project_dir).extract_entries()
        assert [(e.key, e.lang) for e in entries] == [
            ("Greeting", "en"),
            ("Bye", "en"),
            ("Greeting", "fr"),
        ]

    def test_extract_index_and_by_key(self, project_dir, write_strings):
        write_strings("en", {"Greeting": "Hello"})
        write_strings("fr", {"Greeting": "Bonjour"})
        extractor = _extractor(project_dir)
        assert extractor.extract_index()[("Greeting", "fr")].value == "Bonjour"
        assert set(extractor.extract_by_key()["Greeting"]) == {"en", "fr"}

    def test_no_resources(self, project_dir):
        assert _extractor(project_dir).extract_entries() == []

    def test_extract_by_file(self, project_dir, write_strings):
        path = write_strings("en", {"A": "a"})
        by_file = _extractor(project_dir).extract_by_file(project_dir)
        data, entries = by_file["Resources/strings.json"]
        assert file_hash(data) == file_hash(path.read_bytes())
        assert [e.key for e in entries] == ["A"]
