"""Locating files and opening them with the right decompression."""

from __future__ import annotations

import enum
import gzip
import io
import os
import struct
from pathlib import Path
from typing import IO

_GZIP_MAGIC = b"\x1f\x8b"
_FEXTRA = 0x04


class Compression(enum.Enum):
    """Compression of an input file."""

    NONE = "none"
    GZIP = "gzip"
    BGZF = "bgzf"


class UnsupportedStorageError(ValueError):
    """Raised for paths that do not name a file on the local file system."""


def ensure_local(path: str | os.PathLike[str]) -> str:
    """Return a local file-system path, rejecting object-store and web URLs."""
    text = os.fspath(path)
    if "://" in text:
        scheme, _, rest = text.partition("://")
        if scheme.lower() == "file":
            return rest
        raise UnsupportedStorageError(f"unsupported storage location: {text}")
    return text


def _coerce(value: Compression | str) -> Compression:
    if isinstance(value, Compression):
        return value
    try:
        return Compression(value.lower())
    except ValueError:
        raise ValueError(f"unsupported compression type: {value!r}") from None


def _sniff(header: bytes) -> Compression:
    if not header.startswith(_GZIP_MAGIC):
        return Compression.NONE
    if len(header) >= 16 and header[3] & _FEXTRA:
        extra_len = struct.unpack_from("<H", header, 10)[0]
        extra = header[12 : 12 + extra_len]
        while len(extra) >= 4:
            sub_id = extra[:2]
            sub_len = struct.unpack_from("<H", extra, 2)[0]
            if sub_id == b"BC":
                return Compression.BGZF
            extra = extra[4 + sub_len :]
    return Compression.GZIP


def detect_compression(
    path: str | os.PathLike[str], override: Compression | str | None = None
) -> Compression:
    """Work out how ``path`` is compressed, honouring an explicit override."""
    if override is not None:
        return _coerce(override)
    local = Path(ensure_local(path))
    if local.is_file():
        with local.open("rb") as handle:
            return _sniff(handle.read(64))
    suffix = local.suffix.lower()
    if suffix in (".bgz", ".bgzf"):
        return Compression.BGZF
    if suffix == ".gz":
        return Compression.GZIP
    return Compression.NONE


def open_binary(
    path: str | os.PathLike[str], compression: Compression | str | None = None
) -> IO[bytes]:
    """Open ``path`` for reading decompressed bytes."""
    local = ensure_local(path)
    kind = detect_compression(local, compression)
    if kind is Compression.NONE:
        return open(local, "rb")
    # BGZF is a series of gzip members, which gzip reads transparently.
    return gzip.open(local, "rb")


def open_text(
    path: str | os.PathLike[str], compression: Compression | str | None = None
) -> IO[str]:
    """Open ``path`` for reading decompressed UTF-8 text."""
    return io.TextIOWrapper(open_binary(path, compression), encoding="utf-8")