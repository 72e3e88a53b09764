"""
Pytest fixtures and configuration for tests.
"""

import asyncio
from typing import AsyncGenerator, Awaitable, Callable, Generator

import pytest
import pytest_asyncio

from action_engine.config import Settings, get_settings


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[Settings, None, None]:
    """Run every test with fresh test settings."""
    monkeypatch.setenv("ACTION_ENGINE_ENVIRONMENT", "test")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def drain() -> Callable[..., Awaitable[None]]:
    """Let the event loop run pending callbacks for a few ticks."""
    async def _drain(ticks: int = 10) -> None:
        for _ in range(ticks):
            await asyncio.sleep(0)
    return _drain


@pytest_asyncio.fixture
async def loop_errors() -> AsyncGenerator[list[BaseException], None]:
    """Collect exceptions the event loop reports from callbacks."""
    loop = asyncio.get_running_loop()
    errors: list[BaseException] = []

    def handler(_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        errors.append(context.get("exception"))

    loop.set_exception_handler(handler)
    yield errors
    loop.set_exception_handler(None)


async def _value_after(delay: float, value):
    await asyncio.sleep(delay)
    return value


@pytest.fixture
def delayed_value() -> Callable:
    """Coroutine function returning ``value`` after ``delay`` seconds."""
    return _value_after
