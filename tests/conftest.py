"""
Global pytest configuration and fixtures for certreloader tests.

Key material is generated once per session with ``cryptography``; each test
gets its own pair of watched files in a temporary directory.
"""

import logging
import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

from certreloader import Reloader
from tests.helpers import CertFiles, PairMaterial, RecordingObserver, generate_pair


@pytest.fixture(scope="session")
def pairs() -> dict[str, PairMaterial]:
    """Three unrelated RSA-2048 pairs used for rotations."""
    return {name: generate_pair(name) for name in ("alpha", "beta", "gamma")}


@pytest.fixture(scope="session")
def ec_pair() -> PairMaterial:
    return generate_pair("delta", key_type="ec")


@pytest.fixture
def cert_files(tmp_path: Path, pairs: dict[str, PairMaterial]) -> CertFiles:
    """Watched files, initially holding the ``alpha`` pair."""
    files = CertFiles(tmp_path)
    files.write(pairs["alpha"])
    return files


@pytest.fixture
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def make_reloader(
    cert_files: CertFiles, recorder: RecordingObserver
) -> Generator[Callable[..., Reloader], None, None]:
    """Build reloaders on the watched files; all are stopped at teardown."""
    created: list[Reloader] = []

    def factory(interval: float = 3600, **kwargs) -> Reloader:
        kwargs.setdefault("observers", [recorder])
        reloader = Reloader(cert_files.cert_path, cert_files.key_path, interval, **kwargs)
        created.append(reloader)
        return reloader

    yield factory

    for reloader in created:
        reloader.stop(timeout=5)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll ``predicate`` until it is true or ``timeout`` seconds pass."""

    def wait(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return wait


@pytest.fixture
def restore_logging() -> Generator[None, None, None]:
    """Undo setup_logging() so later tests keep structlog/stdlib defaults."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
