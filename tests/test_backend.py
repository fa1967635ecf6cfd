"""Tests for the JSON resource backend."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from lrm_sync.sync.backend import (
    JsonResourceBackend,
    LanguageInfo,
    ResourceEntry,
    ResourceFile,
    create_backend,
)


@pytest.fixture
def backend() -> JsonResourceBackend:
    return JsonResourceBackend(default_language="en")


def _language(path: Path, code: str = "en") -> LanguageInfo:
    return LanguageInfo(code=code, path=path, is_default=code == "en")


class TestDiscoverLanguages:
    def test_default_first_then_sorted(self, backend, project_dir, write_strings):
        write_strings("fr", {})
        write_strings("en", {})
        write_strings("de", {})
        languages = backend.discover_languages(project_dir / "Resources")
        assert [(l.code, l.is_default) for l in languages] == [
            ("en", True),
            ("de", False),
            ("fr", False),
        ]

    def test_invalid_and_default_named_files_ignored(
        self, backend, project_dir
    ):
        resources = project_dir / "Resources"
        (resources / "strings.en.json").write_text("{}")
        (resources / "strings.fr fr.json").write_text("{}")
        assert backend.discover_languages(resources) == []

    def test_missing_directory(self, backend, tmp_path):
        assert backend.discover_languages(tmp_path / "nope") == []

    def test_new_language_path(self, backend, tmp_path):
        assert backend.new_language_path(tmp_path, "en", True) == (
            tmp_path / "strings.json"
        )
        assert backend.new_language_path(tmp_path, "pt-BR", False) == (
            tmp_path / "strings.pt-BR.json"
        )


class TestRead:
    def test_value_shapes(self, backend, write_strings):
        path = write_strings(
            "en",
            {
                "Plain": "Hello",
                "WithComment": {"value": "Save", "comment": "Button"},
                "Items": {
                    "plural": {"one": "{0} item", "other": "{0} items"},
                    "comment": "Cart",
                },
                "Unsupported": 42,
            },
        )
        resource = backend.read(_language(path))
        assert [e.key for e in resource.entries] == [
            "Plain",
            "WithComment",
            "Items",
        ]
        plain, commented, plural = resource.entries
        assert plain.value == "Hello"
        assert (commented.value, commented.comment) == ("Save", "Button")
        assert plural.is_plural
        assert plural.plural_forms == {"one": "{0} item", "other": "{0} items"}
        assert plural.comment == "Cart"

    def test_duplicate_keys_preserved_in_order(self, backend, project_dir):
        path = project_dir / "Resources" / "strings.json"
        path.write_text('{"A": "first", "B": "b", "A": "second"}')
        resource = backend.read(_language(path))
        assert [(e.key, e.value) for e in resource.entries] == [
            ("A", "first"),
            ("B", "b"),
            ("A", "second"),
        ]

    def test_empty_file(self, backend, project_dir):
        path = project_dir / "Resources" / "strings.json"
        path.write_text("")
        assert backend.read(_language(path)).entries == ()

    def test_invalid_json(self, backend, project_dir):
        path = project_dir / "Resources" / "strings.json"
        path.write_text("{oops")
        with pytest.raises(ValueError, match="invalid JSON"):
            backend.read(_language(path))

    def test_non_object_root(self, backend, project_dir):
        path = project_dir / "Resources" / "strings.json"
        path.write_text('["a"]')
        with pytest.raises(ValueError, match="root"):
            backend.read(_language(path))

    def test_bom(self, backend, project_dir):
        path = project_dir / "Resources" / "strings.json"
        path.write_bytes(b'\xef\xbb\xbf{"A": "x"}')
        assert backend.read(_language(path)).entries[0].value == "x"


class TestWrite:
    def test_round_trips_shapes(self, backend, write_strings):
        data = {
            "Plain": "Hello",
            "WithComment": {"value": "Save", "comment": "Button"},
            "Items": {"plural": {"one": "1", "other": "n"}},
        }
        path = write_strings("en", data)
        backend.write(backend.read(_language(path)))
        assert json.loads(path.read_text(encoding="utf-8")) == data

    def test_duplicates_written_back_in_order(self, backend, tmp_path):
        path = tmp_path / "strings.json"
        resource = ResourceFile(
            language=_language(path),
            entries=(
                ResourceEntry(key="A", value="first"),
                ResourceEntry(key="B", value="b"),
                ResourceEntry(key="A", value="second"),
            ),
        )
        backend.write(resource)
        assert path.read_text() == (
            '{\n  "A": "first",\n  "B": "b",\n  "A": "second"\n}\n'
        )
        reread = backend.read(_language(path))
        assert [(e.key, e.value) for e in reread.entries] == [
            ("A", "first"),
            ("B", "b"),
            ("A", "second"),
        ]

    def test_render_matches_json_dumps_layout(self, backend, tmp_path):
        resource = ResourceFile(
            language=_language(tmp_path / "strings.json"),
            entries=(
                ResourceEntry(key="Greeting", value="Hello"),
                ResourceEntry(key="Bye", value="Bye", comment="farewell"),
                ResourceEntry(
                    key="Items",
                    is_plural=True,
                    plural_forms={"one": "1 item", "other": "{0} items"},
                ),
            ),
        )
        expected = {
            "Greeting": "Hello",
            "Bye": {"value": "Bye", "comment": "farewell"},
            "Items": {"plural": {"one": "1 item", "other": "{0} items"}},
        }
        assert backend.render(resource) == (
            json.dumps(expected, indent=2, ensure_ascii=False) + "\n"
        )

    def test_empty_file_rendered_as_empty_object(self, backend, tmp_path):
        resource = ResourceFile(language=_language(tmp_path / "strings.json"))
        assert backend.render(resource) == "{}\n"

    def test_non_ascii_written_verbatim(self, backend, tmp_path):
        path = tmp_path / "strings.de.json"
        resource = ResourceFile(
            language=_language(path, "de"),
            entries=(ResourceEntry(key="Size", value="Größe"),),
        )
        backend.write(resource)
        assert "Größe" in path.read_text(encoding="utf-8")

    def test_falls_back_to_utf8_when_encoding_cannot_hold_text(
        self, backend, tmp_path
    ):
        path = tmp_path / "strings.json"
        resource = ResourceFile(
            language=_language(path),
            entries=(ResourceEntry(key="A", value="日本語"),),
            encoding="latin-1",
        )
        backend.write(resource)
        assert "日本語" in path.read_text(encoding="utf-8")

    def test_explicit_target_path(self, backend, tmp_path):
        resource = ResourceFile(
            language=_language(tmp_path / "strings.json"),
            entries=(ResourceEntry(key="A", value="a"),),
        )
        target = tmp_path / "staging" / "strings.json"
        backend.write(resource, target)
        assert target.exists()
        assert not (tmp_path / "strings.json").exists()


class TestCreateBackend:
    def test_json(self):
        backend = create_backend("json", default_language="fr")
        assert isinstance(backend, JsonResourceBackend)
        assert backend.default_language == "fr"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown resource backend"):
            create_backend("resx")
