"""
Ready-made Actions wrapping common asynchronous primitives.

Implements adapters for callback-style functions, timers and coroutines.
All of them stop reporting once cancelled.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from action_engine.core.action import Action

logger = logging.getLogger(__name__)


class CallbackAction(Action):
    """
    Action around a function taking a trailing result callback.

    The callback follows the ``cb(err, *results)`` convention: a truthy
    ``err`` becomes the error payload, otherwise ``results`` become the
    success payload. Calls arriving after cancellation are ignored.
    """
    
    def __init__(
        self,
        func: Callable[..., Any],
        *args: Any,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(name=name or getattr(func, "__name__", None), logger=logger)
        self._func = func
        self._args = args
    
    def _start(self) -> None:
        def callback(err: Any = None, *results: Any) -> None:
            if self.cancelled:
                self.logger.debug(f"Dropping late callback of cancelled {self.name}")
                return
            if err:
                self.emit_error(err)
            else:
                self.emit_success(*results)
        
        self._func(*self._args, callback)


class Sleeper(Action):
    """Action that succeeds after ``seconds``; cancelling clears the timer."""
    
    def __init__(
        self,
        seconds: float,
        *,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(name=name, logger=logger)
        self.seconds = seconds
        self._handle: Optional[asyncio.TimerHandle] = None
        self.add_cancelback(self._clear_timer)
    
    def _start(self) -> None:
        self._handle = self.loop.call_later(self.seconds, self.emit_success)
    
    def _clear_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class CoroutineAction(Action):
    """
    Action running a coroutine function as an asyncio task.
    
    The return value becomes the success payload, a raised exception the
    error payload. Cancelling the action cancels the task; a task cancelled
    from outside cancels the action.
    """
    
    def __init__(
        self,
        coro_fn: Callable[..., Awaitable[Any]],
        *args: Any,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(name=name or getattr(coro_fn, "__name__", None), logger=logger)
        self._coro_fn = coro_fn
        self._args = args
        self._task: Optional[asyncio.Task] = None
        self.add_cancelback(self._cancel_task)
    
    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task
    
    def _start(self) -> None:
        self._task = self.loop.create_task(self._coro_fn(*self._args))
        self._task.add_done_callback(self._on_task_done)
    
    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.cancel()
            return
        
        error = task.exception()
        if error is not None:
            self.emit_error(error)
        else:
            self.emit_success(task.result())
    
    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()


def from_callback(func: Callable[..., Any], *args: Any, **kwargs: Any) -> CallbackAction:
    """Wrap ``func(*args, callback)`` into an Action."""
    return CallbackAction(func, *args, **kwargs)


def sleeper(seconds: float, **kwargs: Any) -> Sleeper:
    """Create an Action that succeeds after ``seconds``."""
    return Sleeper(seconds, **kwargs)


def from_coroutine(coro_fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> CoroutineAction:
    """Wrap ``coro_fn(*args)`` into an Action."""
    return CoroutineAction(coro_fn, *args, **kwargs)
