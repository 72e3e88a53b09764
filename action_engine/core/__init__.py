"""Core domain models and business logic."""

from action_engine.core.models import (
    ActionEvent,
    ActionStatus,
    AdvanceTo,
    Async,
    Continue,
    StateTransition,
    Suspend,
    TransitionSpec,
    Value,
)
from action_engine.core.action import (
    Action,
    ActionAlreadyStartedError,
    ActionError,
    ActionFailedError,
    EngineError,
    UnhandledActionError,
)
from action_engine.core.state_machine import StateMachine, UndefinedStateError
from action_engine.core.sequencer import COMPLETE, ERROR, NavigationError, Sequencer

__all__ = [
    "ActionEvent",
    "ActionStatus",
    "AdvanceTo",
    "Async",
    "Continue",
    "StateTransition",
    "Suspend",
    "TransitionSpec",
    "Value",
    "Action",
    "ActionAlreadyStartedError",
    "ActionError",
    "ActionFailedError",
    "EngineError",
    "UnhandledActionError",
    "StateMachine",
    "UndefinedStateError",
    "COMPLETE",
    "ERROR",
    "NavigationError",
    "Sequencer",
]
