"""Shared fixtures: a controllable clock and a throwaway SQLite file."""

import os
import tempfile
from datetime import datetime

import pytest

DAY = 86400.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    # 10:00 local time: MORNING bucket
    return FakeClock(datetime(2024, 5, 1, 10, 0).timestamp())


@pytest.fixture
def db_path():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(path + suffix):
            os.unlink(path + suffix)
