"""Content hashing for entries and configuration values.

All digests are lowercase hex SHA-256.  Strings are NFC-normalised before
encoding so the same text typed on different platforms hashes the same;
the server computes remote hashes with the identical algorithm.
"""

from __future__ import annotations

import hashlib
import unicodedata
from collections.abc import Mapping


def _nfc(text: str | None) -> str:
    return unicodedata.normalize("NFC", text or "")


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def entry_hash(value: str | None, comment: str | None = None) -> str:
    """Hash a single-valued entry together with its comment."""
    return _digest(_nfc(value) + "\0" + _nfc(comment))


def plural_hash(
    forms: Mapping[str, str] | None, comment: str | None = None
) -> str:
    """Hash a plural entry.

    Categories are sorted ordinally and rendered ``category=form|`` so the
    digest does not depend on dict ordering.
    """
    if not forms:
        return entry_hash("", comment)
    body = "".join(
        f"{category}={_nfc(forms[category])}|"
        for category in sorted(forms)
    )
    return _digest(body + "\0" + _nfc(comment))


def config_hash(value: str | None) -> str:
    """Hash a configuration property's canonical value."""
    return _digest(_nfc(value))


def file_hash(data: bytes) -> str:
    """Hash raw file bytes (used by the legacy whole-file state format)."""
    return hashlib.sha256(data).hexdigest()
