"""Key material generation and watched-file helpers shared by the tests."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from certreloader import ReloadObserver, ReloadResult


@dataclass(frozen=True)
class PairMaterial:
    """PEM encoded self-signed certificate and its private key."""

    common_name: str
    cert_pem: bytes
    key_pem: bytes
    public_key_der: bytes


def generate_pair(common_name: str, key_type: str = "rsa", password: bytes | None = None) -> PairMaterial:
    if key_type == "rsa":
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    else:
        private_key = ec.generate_private_key(ec.SECP256R1())

    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName("localhost")]),
            critical=False,
        )
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        .sign(private_key, hashes.SHA256())
    )

    encryption = (
        serialization.BestAvailableEncryption(password)
        if password
        else serialization.NoEncryption()
    )
    return PairMaterial(
        common_name=common_name,
        cert_pem=cert.public_bytes(serialization.Encoding.PEM),
        key_pem=private_key.private_bytes(
            serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption
        ),
        public_key_der=private_key.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ),
    )


def public_key_der(certificate: x509.Certificate) -> bytes:
    return certificate.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class CertFiles:
    """The certificate and key files a reloader under test watches."""

    def __init__(self, directory: Path):
        self.cert_path = directory / "fullchain.pem"
        self.key_path = directory / "privkey.pem"

    def write(self, pair: PairMaterial) -> None:
        self.write_cert(pair.cert_pem)
        self.write_key(pair.key_pem)

    def write_cert(self, data: bytes) -> None:
        self.cert_path.write_bytes(data)

    def write_key(self, data: bytes) -> None:
        self.key_path.write_bytes(data)


class RecordingObserver(ReloadObserver):
    """Keeps every ReloadResult it is given."""

    def __init__(self):
        self._lock = threading.Lock()
        self._results: list[ReloadResult] = []

    def on_reload(self, result: ReloadResult) -> None:
        with self._lock:
            self._results.append(result)

    @property
    def results(self) -> list[ReloadResult]:
        with self._lock:
            return list(self._results)

    @property
    def last(self) -> ReloadResult:
        return self.results[-1]


def reload_attempts(registry, outcome: str, namespace: str = "certreloader") -> float:
    """Current value of the reload attempts counter for ``outcome``."""
    value = registry.get_sample_value(f"{namespace}_reload_attempts_total", {"outcome": outcome})
    return value or 0.0
