"""
Periodic, atomic reloading of a TLS certificate and private key.

A ``Reloader`` loads a certificate/key pair once when constructed and then
polls both files on a fixed interval from a background thread. When their
contents change and the new material is valid, the new ``KeyPair`` replaces
the old one in a single reference assignment, so ``get()`` always returns a
complete pair and never blocks. A failed reload is reported to the observers
and leaves the previously published pair in place.
"""

import math
import os
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from .config import ReloaderConfig
from .exceptions import CertReloaderError, ConfigurationError, FileReadError, KeyPairError, SourceKind
from .keypair import ContextFactory, KeyPair, parse_key_pair
from .loader import Fingerprint, has_changed, read_sources
from .logger import ReloadAttemptContext, get_logger
from .observers import LoggingObserver, ReloadObserver, ReloadOutcome, ReloadResult, ReloadTrigger

logger = get_logger(__name__)

Interval = Union[float, int, timedelta]
PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class Snapshot:
    """Everything a reload publishes, swapped in as one reference."""

    key_pair: KeyPair
    cert_fingerprint: Fingerprint
    key_fingerprint: Fingerprint

    @property
    def fingerprints(self) -> Tuple[Fingerprint, Fingerprint]:
        return (self.cert_fingerprint, self.key_fingerprint)


def _absolute(path: PathLike) -> Path:
    # Symlinks stay unresolved so rotation by symlink swap
    # (e.g. Kubernetes secret volumes) is picked up.
    return Path(os.path.abspath(os.path.expanduser(os.fspath(path))))


def _interval_seconds(interval: Interval) -> float:
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if not (math.isfinite(seconds) and 0 < seconds <= threading.TIMEOUT_MAX):
        raise ConfigurationError(
            f"Reload interval must be a positive, finite number of seconds, got {interval!r}",
            {"interval": str(interval)},
        )
    return seconds


class Reloader:
    """
    Keeps one certificate/private key pair fresh.

    Args:
        cert_path: PEM certificate file, leaf first, optionally followed by
            intermediates
        key_path: PEM private key file
        interval: Seconds (or a ``timedelta``) between reload attempts
        password: Password for an encrypted private key
        observers: Receivers of every ``ReloadResult``; defaults to a single
            ``LoggingObserver``
        context_factory: Builds the ``ssl.SSLContext`` for each published pair
        name: Label used in logs and thread names; defaults to the
            certificate file name

    Raises:
        FileReadError: either file could not be read on the first load
        KeyPairError: the initial contents are not a valid pair
        ConfigurationError: ``interval`` is not positive or is too large
            for ``threading.Event.wait``

    No background thread is started when construction fails.
    """

    def __init__(
        self,
        cert_path: PathLike,
        key_path: PathLike,
        interval: Interval,
        *,
        password: Optional[bytes] = None,
        observers: Optional[Iterable[ReloadObserver]] = None,
        context_factory: Optional[ContextFactory] = None,
        name: Optional[str] = None,
    ):
        self.cert_path = _absolute(cert_path)
        self.key_path = _absolute(key_path)
        self.interval = _interval_seconds(interval)
        self.name = name or self.cert_path.name
        self._password = password
        self._context_factory = context_factory
        if observers is None:
            self._observers: Tuple[ReloadObserver, ...] = (LoggingObserver(self.name),)
        else:
            self._observers = tuple(observers)

        # Reentrant so an observer may call reload() from inside on_reload().
        self._reload_lock = threading.RLock()
        self._stop_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._snapshot: Optional[Snapshot] = None
        self._thread: Optional[threading.Thread] = None

        result = self._attempt(ReloadTrigger.INITIAL)
        if result.error is not None:
            raise result.error

        self._thread = threading.Thread(
            target=self._run, name=f"certreloader-{self.name}", daemon=True
        )
        self._thread.start()
        logger.info(
            "Reloader started",
            reloader=self.name,
            cert_path=str(self.cert_path),
            key_path=str(self.key_path),
            interval_seconds=self.interval,
        )

    @classmethod
    def from_config(
        cls,
        config: ReloaderConfig,
        observers: Optional[Iterable[ReloadObserver]] = None,
        context_factory: Optional[ContextFactory] = None,
    ) -> "Reloader":
        """Create a reloader from a ``ReloaderConfig``."""
        return cls(
            config.cert_path,
            config.key_path,
            config.interval_seconds,
            password=config.password_bytes(),
            observers=observers,
            context_factory=context_factory,
        )

    def get(self) -> KeyPair:
        """Return the currently published pair. Never blocks, never fails."""
        return self._snapshot.key_pair

    @property
    def fingerprints(self) -> Tuple[Fingerprint, Fingerprint]:
        """Fingerprints of the certificate and key contents last accepted."""
        return self._snapshot.fingerprints

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def reload(self) -> ReloadResult:
        """
        Run one reload attempt now, on the calling thread.

        The attempt is reported to the observers like a scheduled one, but a
        failure is also raised so the caller can act on it. Works after
        ``stop()``, which only ends scheduled attempts.

        Raises:
            FileReadError: a file could not be read
            KeyPairError: the new contents are not a valid pair
        """
        result = self._attempt(ReloadTrigger.MANUAL)
        if result.error is not None:
            raise result.error
        return result

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop scheduled reloading.

        Idempotent and safe to call from any thread, including an observer
        running on the reload thread. Waits (up to ``timeout``) for an
        attempt already in progress to finish, after which no scheduled
        attempt runs again. The last published pair stays available.
        """
        with self._stop_lock:
            first = not self._stop_event.is_set()
            self._stop_event.set()
        if first:
            logger.info("Reloader stopping", reloader=self.name)

        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout)

    def __enter__(self) -> "Reloader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def __repr__(self) -> str:
        state = "stopped" if self.stopped else "running"
        return f"<Reloader {self.name} {state} interval={self.interval}s>"

    def _run(self) -> None:
        logger.debug("Reload loop started", reloader=self.name)
        while not self._stop_event.wait(self.interval):
            try:
                self._attempt(ReloadTrigger.SCHEDULED)
            except Exception:
                logger.exception("Unexpected error in reload loop", reloader=self.name)
        logger.debug("Reload loop exited", reloader=self.name)

    def _attempt(self, trigger: ReloadTrigger) -> ReloadResult:
        with self._reload_lock, ReloadAttemptContext() as attempt:
            started = time.perf_counter()
            outcome, error, key_pair = self._load()
            result = ReloadResult(
                outcome=outcome,
                trigger=trigger,
                attempt_id=attempt.attempt_id,
                duration_seconds=time.perf_counter() - started,
                error=error,
                key_pair=key_pair,
            )
            self._notify(result)
            return result

    def _load(self) -> Tuple[ReloadOutcome, Optional[CertReloaderError], Optional[KeyPair]]:
        try:
            cert_source, key_source = read_sources(self.cert_path, self.key_path)
        except FileReadError as e:
            if e.kind is SourceKind.CERTIFICATE:
                return ReloadOutcome.CERTIFICATE_UNREADABLE, e, None
            return ReloadOutcome.KEY_UNREADABLE, e, None

        previous = self._snapshot
        if not has_changed(
            previous.fingerprints if previous is not None else None,
            cert_source.fingerprint,
            key_source.fingerprint,
        ):
            return ReloadOutcome.UNCHANGED, None, None

        try:
            key_pair = parse_key_pair(
                cert_source.data,
                key_source.data,
                password=self._password,
                context_factory=self._context_factory,
            )
        except KeyPairError as e:
            return ReloadOutcome.INVALID_KEY_PAIR, e, None

        self._publish(key_pair, cert_source.fingerprint, key_source.fingerprint)
        return ReloadOutcome.UPDATED, None, key_pair

    def _publish(self, key_pair: KeyPair, cert_fingerprint: Fingerprint, key_fingerprint: Fingerprint) -> None:
        # Single reference assignment: readers see the old snapshot or the new one.
        self._snapshot = Snapshot(key_pair, cert_fingerprint, key_fingerprint)

    def _notify(self, result: ReloadResult) -> None:
        for observer in self._observers:
            try:
                observer.on_reload(result)
            except Exception:
                logger.exception(
                    "Reload observer failed",
                    reloader=self.name,
                    observer=type(observer).__name__,
                )
