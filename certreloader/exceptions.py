"""
Exceptions raised by certreloader.

Two error kinds can come out of a reload attempt: ``FileReadError`` when one
of the watched files cannot be read, and ``KeyPairError`` when the contents
were read but do not form a usable certificate/private key pair.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class SourceKind(str, Enum):
    """Which of the two watched files an operation refers to."""

    CERTIFICATE = "certificate"
    PRIVATE_KEY = "private_key"


class CertReloaderError(Exception):
    """Base exception for all certreloader errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary representation."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigurationError(CertReloaderError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, "CONFIGURATION_ERROR", details)


class FileReadError(CertReloaderError):
    """
    Raised when the certificate or private key file cannot be read.

    ``kind`` tells the caller which of the two files failed; the underlying
    ``OSError`` is chained as ``__cause__``.
    """

    def __init__(self, kind: SourceKind, path: Path, reason: str) -> None:
        label = "certificate" if kind is SourceKind.CERTIFICATE else "private key"
        super().__init__(
            f"unable to read {label} {path}: {reason}",
            "FILE_READ_ERROR",
            {"kind": kind.value, "path": str(path), "reason": reason},
        )
        self.kind = kind
        self.path = path
        self.reason = reason


class KeyPairError(CertReloaderError):
    """Raised when certificate and key bytes do not form a valid pair."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            f"invalid certificate/private key pair: {reason}",
            "KEY_PAIR_ERROR",
            {"reason": reason, **(details or {})},
        )
        self.reason = reason
