"""Tests for entry key and language code validation."""

import pytest

from lrm_sync.validators import (
    format_validation_error,
    validate_entry_key,
    validate_language_code,
)


class TestValidateEntryKey:
    @pytest.mark.parametrize(
        "key", ["Greeting", "Menu.File.Open", "key with spaces", "Größe"]
    )
    def test_valid(self, key):
        assert validate_entry_key(key) == (True, "")

    @pytest.mark.parametrize("key", ["", "   ", None, 42])
    def test_empty_or_not_string(self, key):
        ok, reason = validate_entry_key(key)
        assert not ok
        assert reason == "Entry key cannot be empty"

    def test_control_characters(self):
        ok, reason = validate_entry_key("bad\x00key")
        assert not ok
        assert "control characters" in reason


class TestValidateLanguageCode:
    @pytest.mark.parametrize("lang", ["en", "pt-BR", "zh_Hant", "sr-Latn-RS"])
    def test_valid(self, lang):
        assert validate_language_code(lang) == (True, "")

    @pytest.mark.parametrize("lang", ["e n", "en/", "-en", "en-", "../x"])
    def test_invalid_characters(self, lang):
        ok, reason = validate_language_code(lang)
        assert not ok
        assert "may only contain" in reason

    def test_empty(self):
        assert validate_language_code("") == (
            False,
            "Language code cannot be empty",
        )


def test_format_validation_error():
    assert format_validation_error("Entry key", "is bad") == "Entry key is bad"
