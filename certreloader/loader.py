"""Reading the watched files and detecting content changes."""

import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Optional, Tuple

from .exceptions import FileReadError, SourceKind


class Fingerprint(NamedTuple):
    """Cheap content fingerprint, used only to notice that a file changed."""

    size: int
    crc32: int

    def __str__(self) -> str:
        return f"{self.size}:{self.crc32:08x}"


def fingerprint(data: bytes) -> Fingerprint:
    # Not a security boundary.
    return Fingerprint(len(data), zlib.crc32(data))


@dataclass(frozen=True)
class SourceFile:
    """Contents of one watched file as read during a reload attempt."""

    path: Path
    kind: SourceKind
    data: bytes
    fingerprint: Fingerprint


def read_source(path: Path, kind: SourceKind) -> SourceFile:
    """
    Read a watched file in full and fingerprint it.

    Raises:
        FileReadError: the file is missing, unreadable or not a regular file.
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise FileReadError(kind, path, e.strerror or str(e)) from e
    return SourceFile(path=path, kind=kind, data=data, fingerprint=fingerprint(data))


def read_sources(cert_path: Path, key_path: Path) -> Tuple[SourceFile, SourceFile]:
    """Read the certificate first, then the private key."""
    return (
        read_source(cert_path, SourceKind.CERTIFICATE),
        read_source(key_path, SourceKind.PRIVATE_KEY),
    )


def has_changed(
    previous: Optional[Tuple[Fingerprint, Fingerprint]],
    cert_fingerprint: Fingerprint,
    key_fingerprint: Fingerprint,
) -> bool:
    """
    Decide whether freshly read contents need parsing and publishing.

    ``previous`` is the (certificate, key) fingerprint pair of the last
    accepted contents, or ``None`` before the first successful load.
    """
    if previous is None:
        return True
    return previous != (cert_fingerprint, key_fingerprint)
