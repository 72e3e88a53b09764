"""Adapters turning callbacks, timers and coroutines into Actions."""

from action_engine.adapters.primitives import (
    CallbackAction,
    CoroutineAction,
    Sleeper,
    from_callback,
    from_coroutine,
    sleeper,
)

__all__ = [
    "CallbackAction",
    "CoroutineAction",
    "Sleeper",
    "from_callback",
    "from_coroutine",
    "sleeper",
]
