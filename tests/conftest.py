"""Shared test helpers for the liftsense test suite."""

from __future__ import annotations

import asyncio
import time

import pytest
from builders import FakeClock, FakeLoop


async def async_wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.02) -> bool:
    """Poll *predicate* until truthy or *timeout_s* expires, yielding to the loop."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(step_s)
    return False


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
