"""Queues coordinating batches of state machine transitions."""

from action_engine.orchestrator.queues import (
    BaseQueue,
    LinearQueue,
    QueueStartedError,
    TransitionQueue,
)

__all__ = ["BaseQueue", "LinearQueue", "QueueStartedError", "TransitionQueue"]
