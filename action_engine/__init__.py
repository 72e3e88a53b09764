"""
Action Engine

Declarative state machines for asyncio: cancellable actions, ordered
auto-advancing sequences, fan-out/fan-in transition queues, error bubbling
and cooperative cancellation across a tree of in-flight actions.
"""

__version__ = "1.0.0"
