"""
certreloader - hot-reloading TLS certificates for long-running servers.

Watches a certificate and private key file, validates rotated material and
publishes it atomically, so TLS handshakes always see a complete pair and a
bad rotation never replaces a good one.

Usage:
    >>> from certreloader import Reloader
    >>> from certreloader.server import create_server_context

    >>> reloader = Reloader("fullchain.pem", "privkey.pem", interval=300)
    >>> context = create_server_context(reloader)
    >>> # ... serve with context; reloader.stop() on shutdown
"""

__version__ = "0.1.0"

from .config import CertReloaderConfig, ObservabilityConfig, ReloaderConfig, ServerConfig, load_config
from .exceptions import (
    CertReloaderError,
    ConfigurationError,
    FileReadError,
    KeyPairError,
    SourceKind,
)
from .keypair import KeyPair, parse_key_pair
from .loader import Fingerprint, fingerprint
from .logger import LogConfig, get_logger, setup_logging
from .observers import (
    LoggingObserver,
    MetricsObserver,
    ReloadObserver,
    ReloadOutcome,
    ReloadResult,
    ReloadTrigger,
)
from .reloader import Reloader

__all__ = [
    "__version__",
    # Core
    "Reloader",
    "KeyPair",
    "parse_key_pair",
    "Fingerprint",
    "fingerprint",
    # Observation
    "ReloadObserver",
    "LoggingObserver",
    "MetricsObserver",
    "ReloadOutcome",
    "ReloadResult",
    "ReloadTrigger",
    # Configuration
    "CertReloaderConfig",
    "ReloaderConfig",
    "ObservabilityConfig",
    "ServerConfig",
    "load_config",
    # Logging
    "LogConfig",
    "get_logger",
    "setup_logging",
    # Exceptions
    "CertReloaderError",
    "ConfigurationError",
    "FileReadError",
    "KeyPairError",
    "SourceKind",
]
