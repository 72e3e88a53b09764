"""
Unit tests for the callback, timer and coroutine adapters.
"""

import asyncio

import pytest

from action_engine.adapters import (
    CallbackAction,
    CoroutineAction,
    Sleeper,
    from_callback,
    from_coroutine,
    sleeper,
)
from action_engine.core.models import ActionStatus


class TestCallbackAction:
    """Tests for cb(err, *results) style functions."""

    @pytest.mark.asyncio
    async def test_results_become_success_payload(self):
        def weigh(item, callback):
            callback(None, item, 250)

        action = from_callback(weigh, "flour")
        future = action.as_future()
        action.start()

        assert await asyncio.wait_for(future, 1) == ("flour", 250)
        assert action.name == "weigh"

    @pytest.mark.asyncio
    async def test_truthy_error_becomes_error_payload(self):
        action = CallbackAction(lambda callback: callback(OSError("scale offline")))
        future = action.as_future()
        action.start()

        with pytest.raises(OSError, match="scale offline"):
            await asyncio.wait_for(future, 1)

    @pytest.mark.asyncio
    async def test_late_callback_after_cancel_is_ignored(self, drain):
        pending = []
        action = CallbackAction(pending.append)
        results = []
        action.add_callback(lambda *args: results.append(args))

        action.start()
        await drain()
        action.cancel()
        pending[0](None, "too late")

        assert results == []
        assert action.status == ActionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_exception_in_function_becomes_error(self):
        def broken(callback):
            raise RuntimeError("jammed")

        action = CallbackAction(broken)
        future = action.as_future()
        action.start()

        with pytest.raises(RuntimeError, match="jammed"):
            await asyncio.wait_for(future, 1)


class TestSleeper:
    """Tests for the timer adapter."""

    @pytest.mark.asyncio
    async def test_succeeds_after_delay(self):
        action = sleeper(0.01)
        future = action.as_future()
        loop = asyncio.get_running_loop()
        started = loop.time()

        action.start()
        await asyncio.wait_for(future, 1)

        assert loop.time() - started >= 0.005
        assert action.status == ActionStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_cancel_clears_timer(self, drain):
        action = Sleeper(0.01)
        successes = []
        action.add_callback(lambda *args: successes.append(args))

        action.start()
        await drain()
        action.cancel()
        await asyncio.sleep(0.03)

        assert successes == []
        assert action.cancelled


class TestCoroutineAction:
    """Tests for the coroutine adapter."""

    @pytest.mark.asyncio
    async def test_return_value_is_success_payload(self, delayed_value):
        action = from_coroutine(delayed_value, 0, {"temp": 180})
        future = action.as_future()
        action.start()

        assert await asyncio.wait_for(future, 1) == {"temp": 180}
        assert action.name == "_value_after"

    @pytest.mark.asyncio
    async def test_raised_exception_is_error_payload(self):
        async def overheat():
            raise RuntimeError("too hot")

        action = CoroutineAction(overheat)
        future = action.as_future()
        action.start()

        with pytest.raises(RuntimeError, match="too hot"):
            await asyncio.wait_for(future, 1)

    @pytest.mark.asyncio
    async def test_cancel_cancels_task(self, drain):
        action = CoroutineAction(asyncio.sleep, 10)
        action.start()
        await drain()

        task = action.task
        action.cancel()
        await drain()

        assert task.cancelled()
        assert action.cancelled

    @pytest.mark.asyncio
    async def test_task_cancelled_from_outside_cancels_action(self, drain):
        action = CoroutineAction(asyncio.sleep, 10)
        cancels = []
        action.add_cancelback(lambda: cancels.append(True))
        action.start()
        await drain()

        action.task.cancel()
        await drain()

        assert action.cancelled
        assert cancels == [True]
