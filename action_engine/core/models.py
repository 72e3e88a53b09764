"""
Domain models for the action engine.

Pydantic models describe recorded or declared data (transitions, history),
small frozen dataclasses describe the step inputs and handler outcomes that
flow through a running machine.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActionEvent(str, Enum):
    """Events an Action can emit. Each fires at most once."""

    SUCCESS = "success"
    ERROR = "error"
    CANCEL = "cancel"


class ActionStatus(str, Enum):
    """
    Lifecycle of an Action.

    State transitions:
    - IDLE -> PENDING -> RUNNING -> SUCCEEDED
    - IDLE -> PENDING -> RUNNING -> FAILED
    - Any non-terminal state -> CANCELLED
    """

    IDLE = "IDLE"            # Constructed, start() not called yet
    PENDING = "PENDING"      # start() called, waiting for the next loop tick
    RUNNING = "RUNNING"      # Start procedure has run
    SUCCEEDED = "SUCCEEDED"  # Success emitted
    FAILED = "FAILED"        # Error emitted
    CANCELLED = "CANCELLED"  # Cancelled before reaching an outcome


TERMINAL_STATUSES: frozenset[ActionStatus] = frozenset({
    ActionStatus.SUCCEEDED,
    ActionStatus.FAILED,
    ActionStatus.CANCELLED,
})


class StateTransition(BaseModel):
    """Represents a state transition event."""

    from_state: Optional[str] = None
    to_state: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    arg_count: int = Field(default=0, ge=0, description="Positional args handed to the handler")


class TransitionSpec(BaseModel):
    """
    One-shot binding of a child Action to its success and error states.

    An explicit ``error`` target means the failure is handled locally: the
    child's error does not bubble and does not cancel its siblings.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    action: Any = Field(..., description="Action whose outcome triggers the transition")
    success: Optional[str] = Field(default=None, description="State entered on success")
    error: Optional[str] = Field(default=None, description="State entered on error")
    data: Any = Field(default=None, description="Extra value appended to the child's result")

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: Any) -> Any:
        """Only startable values can drive a transition."""
        if v is None:
            raise ValueError("Transition added with no action")
        if not callable(getattr(v, "start", None)):
            raise ValueError(f"Transition action is not startable: {v!r}")
        return v

    @field_validator("success", "error")
    @classmethod
    def validate_state_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v:
            raise ValueError("State name must not be empty")
        return v

    @property
    def targets(self) -> set[str]:
        """States this transition may land in."""
        return {name for name in (self.success, self.error) if name}


# ==================== Step inputs ====================

@dataclass(frozen=True, slots=True)
class Value:
    """A plain value handed to the target state as its only argument."""

    value: Any


@dataclass(frozen=True, slots=True)
class Async:
    """An Action whose success result feeds the target state."""

    action: Any


StepInput = Union[Value, Async]


def as_step_input(obj: Any) -> Optional[StepInput]:
    """
    Classify a navigation payload.

    ``None`` means "no arguments", startable objects become ``Async`` and
    everything else is wrapped in ``Value``.
    """
    if obj is None or isinstance(obj, (Value, Async)):
        return obj
    if callable(getattr(obj, "start", None)):
        return Async(obj)
    return Value(obj)


# ==================== Handler outcomes ====================

@dataclass(frozen=True, slots=True, init=False)
class Continue:
    """Advance to the next declared state, passing ``args`` along."""

    args: tuple

    def __init__(self, *args: Any):
        object.__setattr__(self, "args", args)


@dataclass(frozen=True, slots=True, init=False)
class AdvanceTo:
    """Jump to ``state``, passing ``args`` along."""

    state: str
    args: tuple

    def __init__(self, state: str, *args: Any):
        object.__setattr__(self, "state", state)
        object.__setattr__(self, "args", args)


@dataclass(frozen=True, slots=True)
class Suspend:
    """Stay in the current state until an external callback navigates."""


Outcome = Union[Continue, AdvanceTo, Suspend]
