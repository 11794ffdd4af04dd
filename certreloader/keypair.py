"""
Parsing and validation of certificate/private key material.

``parse_key_pair`` is the only place where freshly read bytes can be rejected
as cryptographically unusable. It either returns a fully built ``KeyPair``
or raises ``KeyPairError``; it never has side effects on reloader state.
"""

import os
import secrets
import ssl
import tempfile
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization

from .exceptions import KeyPairError

ContextFactory = Callable[[], ssl.SSLContext]


def default_server_context() -> ssl.SSLContext:
    """Server-side context used for each published pair unless overridden."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


@dataclass(frozen=True, eq=False)
class KeyPair:
    """
    A certificate chain bound to its private key.

    Instances are immutable and compared by identity: a reload that publishes
    new material always produces a new object.
    """

    chain: Tuple[x509.Certificate, ...]
    private_key: object
    ssl_context: ssl.SSLContext

    @property
    def certificate(self) -> x509.Certificate:
        """The leaf certificate."""
        return self.chain[0]

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def issuer(self) -> str:
        return self.certificate.issuer.rfc4514_string()

    @property
    def serial_number(self) -> str:
        return format(self.certificate.serial_number, "x")

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    @property
    def sha256_fingerprint(self) -> str:
        return self.certificate.fingerprint(hashes.SHA256()).hex(":").upper()

    def load_into(self, context: ssl.SSLContext) -> None:
        """Load this chain and key into another SSL context."""
        _load_cert_chain(context, self.chain, self.private_key)

    def describe(self) -> dict:
        """Summary suitable for logs and JSON responses."""
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "serial_number": self.serial_number,
            "not_before": self.not_before.isoformat(),
            "not_after": self.not_after.isoformat(),
            "sha256_fingerprint": self.sha256_fingerprint,
        }


def _public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _write_private_file(path: str, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def _load_cert_chain(
    context: ssl.SSLContext,
    chain: Sequence[x509.Certificate],
    private_key,
) -> None:
    # The ssl module only loads chains from files. They are staged in a
    # private directory removed as soon as OpenSSL has read them, and the key
    # is encrypted with a one-time token that never leaves this process.
    token = secrets.token_hex(32).encode()
    chain_pem = b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in chain)
    key_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(token),
    )
    with tempfile.TemporaryDirectory(prefix="certreloader-") as tmp:
        cert_file = os.path.join(tmp, "chain.pem")
        key_file = os.path.join(tmp, "key.pem")
        _write_private_file(cert_file, chain_pem)
        _write_private_file(key_file, key_pem)
        context.load_cert_chain(cert_file, key_file, password=token)


def parse_key_pair(
    cert_pem: bytes,
    key_pem: bytes,
    *,
    password: Optional[bytes] = None,
    context_factory: Optional[ContextFactory] = None,
) -> KeyPair:
    """
    Build a ``KeyPair`` from PEM encoded certificate chain and private key.

    The first certificate in ``cert_pem`` is the leaf; any following ones are
    intermediates and are served as-is.

    Raises:
        KeyPairError: the certificate or key cannot be parsed, the key does
            not belong to the leaf certificate, or OpenSSL rejects the pair.
    """
    try:
        chain = tuple(x509.load_pem_x509_certificates(cert_pem))
    except ValueError as e:
        raise KeyPairError(f"failed to parse certificate: {e}", {"stage": "certificate"}) from e

    try:
        private_key = serialization.load_pem_private_key(key_pem, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyPairError(f"failed to parse private key: {e}", {"stage": "private_key"}) from e

    try:
        certificate_key = chain[0].public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyPairError(
            f"unsupported certificate public key: {e}", {"stage": "certificate"}
        ) from e

    if _public_key_der(certificate_key) != _public_key_der(private_key.public_key()):
        raise KeyPairError("private key does not match certificate public key", {"stage": "match"})

    context = (context_factory or default_server_context)()
    try:
        _load_cert_chain(context, chain, private_key)
    except ssl.SSLError as e:
        raise KeyPairError(f"rejected by TLS library: {e}", {"stage": "ssl_context"}) from e
    except OSError as e:
        raise KeyPairError(
            f"unable to stage key material for the TLS library: {e}", {"stage": "ssl_context"}
        ) from e

    return KeyPair(chain=chain, private_key=private_key, ssl_context=context)
