"""
Observation surface for reload attempts.

Every attempt, successful or not, is described by a ``ReloadResult`` and
handed to each registered ``ReloadObserver``. Observers are called one at a
time, in registration order, from whichever thread ran the attempt.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .exceptions import CertReloaderError
from .keypair import KeyPair
from .logger import get_logger
from .metrics import ReloadMetrics


class ReloadOutcome(str, Enum):
    """What a single reload attempt did."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    CERTIFICATE_UNREADABLE = "certificate_unreadable"
    KEY_UNREADABLE = "key_unreadable"
    INVALID_KEY_PAIR = "invalid_key_pair"

    @property
    def is_failure(self) -> bool:
        return self not in (ReloadOutcome.UPDATED, ReloadOutcome.UNCHANGED)


class ReloadTrigger(str, Enum):
    INITIAL = "initial"
    SCHEDULED = "scheduled"
    MANUAL = "manual"


@dataclass(frozen=True)
class ReloadResult:
    """Outcome of one reload attempt."""

    outcome: ReloadOutcome
    trigger: ReloadTrigger
    attempt_id: str
    duration_seconds: float
    error: Optional[CertReloaderError] = None
    key_pair: Optional[KeyPair] = None

    @property
    def ok(self) -> bool:
        return not self.outcome.is_failure


class ReloadObserver(ABC):
    """
    Interface for collaborators that want to hear about reload attempts.

    ``on_reload`` runs while the reloader holds its (reentrant) reload lock,
    so it may call ``reload()`` or ``stop()`` on the same reloader.
    """

    @abstractmethod
    def on_reload(self, result: ReloadResult) -> None:
        """
        Handle the result of a reload attempt.

        Args:
            result: What the attempt did, including the error on failure
                and the newly published pair on update
        """
        pass


class LoggingObserver(ReloadObserver):
    """
    Reports reload attempts through structlog.

    With ``first_error_only`` a failure identical to the previous one is
    logged at debug level, so a file left broken for hours does not flood
    the logs on every tick. The next success is logged as a recovery.
    """

    def __init__(self, name: str = "certreloader", first_error_only: bool = False):
        self.logger = get_logger("certreloader.reloader").bind(reloader=name)
        self.first_error_only = first_error_only
        self._last_failure: Optional[Tuple[ReloadOutcome, str]] = None

    def on_reload(self, result: ReloadResult) -> None:
        if result.outcome is ReloadOutcome.UNCHANGED:
            self.logger.debug(
                "Certificate files unchanged",
                trigger=result.trigger.value,
                duration_ms=round(result.duration_seconds * 1000, 2),
            )
            self._recovered(result)
            return

        if result.outcome is ReloadOutcome.UPDATED:
            self.logger.info(
                "Certificate reloaded",
                trigger=result.trigger.value,
                duration_ms=round(result.duration_seconds * 1000, 2),
                **(result.key_pair.describe() if result.key_pair else {}),
            )
            self._recovered(result)
            return

        signature = (result.outcome, str(result.error))
        repeated = signature == self._last_failure
        self._last_failure = signature
        log = self.logger.debug if (repeated and self.first_error_only) else self.logger.error
        log(
            "Certificate reload failed",
            trigger=result.trigger.value,
            outcome=result.outcome.value,
            error_code=result.error.error_code if result.error else None,
            error=str(result.error),
            details=result.error.details if result.error else {},
            repeated=repeated,
        )

    def _recovered(self, result: ReloadResult) -> None:
        if self._last_failure is not None:
            self.logger.info(
                "Certificate reload recovered",
                previous_outcome=self._last_failure[0].value,
                trigger=result.trigger.value,
            )
            self._last_failure = None


class MetricsObserver(ReloadObserver):
    """Feeds reload attempts into ``ReloadMetrics``."""

    def __init__(self, metrics: ReloadMetrics):
        self.metrics = metrics

    def on_reload(self, result: ReloadResult) -> None:
        self.metrics.record_attempt(result.outcome.value, result.duration_seconds)
        if result.key_pair is not None:
            self.metrics.record_published(result.key_pair)
