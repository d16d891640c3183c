"""
Shared fixtures for spool contract tests
"""

from pathlib import Path

import pytest

from spool.config import build_config
from spool.writer import SpoolWriter

# 2023-11-14T22:01:00Z, one minute into hour bucket 472222
BASE_TIME = 472222 * 3600 + 60


class FakeClock:
    """
    Manually advanced clock for rotation tests
    """

    def __init__(self, now: float = BASE_TIME) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def spool_dir(tmp_path: Path) -> Path:
    return tmp_path / "spool"


@pytest.fixture
def make_writer(spool_dir: Path, clock: FakeClock):
    def _make(**options) -> SpoolWriter:
        return SpoolWriter(build_config(spool_dir, **options), clock=clock)

    return _make
