"""
State machine actions.

A StateMachine is an Action with named state handlers and a current-state
cursor. ``transition`` is the single primitive that embeds asynchronous work
into a state: the machine suspends until the child Action reports, then
enters the success or error state with the child's payload.
"""

import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Optional

from action_engine.config import get_settings
from action_engine.core.action import Action, EngineError
from action_engine.core.models import StateTransition, TransitionSpec

if TYPE_CHECKING:
    from action_engine.orchestrator.queues import LinearQueue, TransitionQueue

logger = logging.getLogger(__name__)


StateHandler = Callable[..., Any]


class UndefinedStateError(EngineError):
    """Raised when the machine enters a state with no handler."""

    def __init__(self, state: Optional[str]):
        self.state = state
        super().__init__(f"Undefined state: {state}")


class StateMachine(Action):
    """
    Action extended with named states.

    Exactly one state is current at any instant. Handlers receive the
    positional arguments of the transition that entered their state.
    """

    DEFAULT_SUCCESS_STATE = "success"
    DEFAULT_ERROR_STATE = "error"

    def __init__(
        self,
        on_start: Optional[Callable[[Action], Any]] = None,
        *,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(on_start, name=name, logger=logger)
        self.state: Optional[str] = None
        self._handlers: dict[str, StateHandler] = {}
        self._entered_state: Optional[str] = None
        self._navigations = 0
        self._history: deque[StateTransition] = deque(maxlen=get_settings().history_limit)

    @property
    def history(self) -> list[StateTransition]:
        """Get state transition history (most recent last)."""
        return list(self._history)

    @property
    def navigation_count(self) -> int:
        """Number of handler invocations and transitions wired so far."""
        return self._navigations

    def has_state(self, state: str) -> bool:
        return state in self._handlers

    def add_state(self, state: str, handler: StateHandler) -> None:
        """
        Register a handler for ``state``.

        The first registration wins; re-registering logs a warning and leaves
        the original handler in place.
        """
        if state in self._handlers:
            self.logger.warning(f"A handler for {state} has already been defined on {self.name}")
            return
        self._handlers[state] = handler

    def transition_now(self, *args: Any) -> Any:
        """
        Invoke the current state's handler.

        Raises:
            UndefinedStateError: If no handler is registered for the state
        """
        if self.cancelled:
            self.logger.debug(f"{self.name} is cancelled, not entering {self.state}")
            return None

        handler = self._handlers.get(self.state)
        if handler is None:
            self.logger.error(f"Undefined state on {self.name}: {self.state}")
            raise UndefinedStateError(self.state)

        self._navigations += 1
        self._history.append(
            StateTransition(
                from_state=self._entered_state,
                to_state=self.state,
                arg_count=len(args),
            )
        )
        self.logger.debug(f"{self.name}: {self._entered_state} -> {self.state}")
        self._entered_state = self.state

        return handler(*args)

    def transition_to(self, state: str, *args: Any) -> Any:
        """Make ``state`` current and invoke its handler."""
        self.state = state
        return self.transition_now(*args)

    def transition(
        self,
        spec: Optional[TransitionSpec] = None,
        *,
        action: Optional[Action] = None,
        success: Optional[str] = None,
        error: Optional[str] = None,
        data: Any = None,
    ) -> TransitionSpec:
        """
        Wire a child Action as the trigger of the next state.

        On success the machine enters ``success`` (default
        ``DEFAULT_SUCCESS_STATE``) with the child's result, followed by
        ``data`` when given. With an explicit ``error`` target a failure
        enters that state and does not bubble; without one the failure
        bubbles: siblings are cancelled and the machine fails.

        Returns:
            The TransitionSpec that was wired
        """
        if spec is None:
            spec = TransitionSpec(action=action, success=success, error=error, data=data)

        success_state = spec.success or self.DEFAULT_SUCCESS_STATE

        def with_data(args: tuple) -> tuple:
            return args if spec.data is None else args + (spec.data,)

        def on_success(*args: Any) -> None:
            self.transition_to(success_state, *with_data(args))

        spec.action.add_callback(on_success)

        if spec.error is not None:
            def on_error(*args: Any) -> None:
                self.transition_to(spec.error, *with_data(args))

            spec.action.add_errback(on_error)

        self._navigations += 1
        self.add_action(spec.action, bubble_errors=spec.error is None)
        return spec

    def _bubble_error(self, *args: Any) -> None:
        # Route through the error state when there is one so its handler
        # (and any exit hook wrapped around it) sees the failure.
        if self.DEFAULT_ERROR_STATE in self._handlers and not self.terminated:
            self.transition_to(self.DEFAULT_ERROR_STATE, *args)
        else:
            self.emit_error(*args)

    def transition_queue(self, final_state: str) -> "TransitionQueue":
        """Create a parallel join queue bound to this machine."""
        from action_engine.orchestrator.queues import TransitionQueue

        return TransitionQueue(self, final_state)

    def linear_queue(self, final_state: str) -> "LinearQueue":
        """Create a serial chain queue bound to this machine."""
        from action_engine.orchestrator.queues import LinearQueue

        return LinearQueue(self, final_state)
