"""File handler module: encoding-aware read and atomic write.

Provides the file I/O used by the resource backend, the state store and
the config-file writer.  Reads detect the encoding with
charset-normalizer; writes go through a temp file in the target directory
followed by ``os.replace()`` so a reader never sees partial content.
"""

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# File Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.  A leading
    UTF-8 BOM is dropped.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    if raw.startswith(b"\xef\xbb\xbf"):
        return (raw[3:].decode("utf-8", errors="replace"), "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        # Detection failed, fall back to utf-8
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # Normalize ascii to utf-8 (ascii is a strict subset of utf-8)
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


# =============================================================================
# File Write
# =============================================================================


def atomic_write_bytes(path: Path, data: bytes) -> int:
    """Replace *path* with *data* atomically.

    Writes to a temporary file in the same directory then calls
    ``os.replace()``.  The temp file is removed on any failure.

    Args:
        path: Path to the output file.  Parent directories are created.
        data: Bytes to write.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


def atomic_write_text(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Text variant of :func:`atomic_write_bytes`."""
    return atomic_write_bytes(path, content.encode(encoding))
