"""Tests for lrm_sync.sync.hasher."""

import hashlib
import unicodedata

from lrm_sync.sync.hasher import config_hash, entry_hash, file_hash, plural_hash


def _sha(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TestEntryHash:
    def test_value_and_comment_separated_by_nul(self):
        assert entry_hash("Hello", "greeting") == _sha("Hello\0greeting")

    def test_missing_comment_hashes_as_empty(self):
        assert entry_hash("Hello") == _sha("Hello\0")
        assert entry_hash("Hello", None) == entry_hash("Hello", "")

    def test_lowercase_hex(self):
        digest = entry_hash("x")
        assert len(digest) == 64
        assert digest == digest.lower()

    def test_empty_value_accepted(self):
        assert entry_hash("") == _sha("\0")

    def test_comment_changes_hash(self):
        assert entry_hash("Hello", "a") != entry_hash("Hello", "b")

    def test_nfc_normalisation(self):
        decomposed = "Café"
        composed = unicodedata.normalize("NFC", decomposed)
        assert decomposed != composed
        assert entry_hash(decomposed) == entry_hash(composed)


class TestPluralHash:
    def test_categories_sorted(self):
        forms_a = {"other": "{0} items", "one": "1 item"}
        forms_b = {"one": "1 item", "other": "{0} items"}
        expected = _sha("one=1 item|other={0} items|\0note")
        assert plural_hash(forms_a, "note") == expected
        assert plural_hash(forms_b, "note") == expected

    def test_empty_forms_fall_back_to_entry_hash(self):
        assert plural_hash({}, "c") == entry_hash("", "c")
        assert plural_hash(None) == entry_hash("")

    def test_differs_from_plain_entry(self):
        assert plural_hash({"other": "x"}) != entry_hash("x")


class TestConfigAndFileHash:
    def test_config_hash_is_plain_digest(self):
        assert config_hash('"en"') == _sha('"en"')

    def test_config_hash_none(self):
        assert config_hash(None) == _sha("")

    def test_file_hash_raw_bytes(self):
        data = b"\xef\xbb\xbf{}"
        assert file_hash(data) == hashlib.sha256(data).hexdigest()
