"""
Ordered, auto-advancing state machines.

A Sequencer runs a declared sequence of steps. A step that neither navigates
nor starts asynchronous work falls through to the next declared step; any
explicit navigation (next, prev, repeat, named jumps, delayed jumps,
transitions) takes over instead. Two reserved terminal states, ``complete``
and ``error``, surface the outcome as the machine's own success or error.

Usage:

    seq = Sequencer(name="bake")

    @seq.next
    def mix(*args):
        seq.to_next(from_callback(mixer.run, "dough"))

    @seq.next
    def bake(dough):
        return Continue(f"baked {dough}")

    seq.ensure(oven.switch_off)
    seq.start()
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from action_engine.core.action import EngineError
from action_engine.core.models import (
    AdvanceTo,
    Async,
    Continue,
    Outcome,
    StepInput,
    Suspend,
    Value,
    as_step_input,
)
from action_engine.core.state_machine import StateMachine

logger = logging.getLogger(__name__)


COMPLETE = "complete"
ERROR = "error"
RESERVED_STATES: frozenset[str] = frozenset({COMPLETE, ERROR})


StepHandler = Callable[..., Optional[Outcome]]


class NavigationError(Exception):
    """Error payload used when navigation leaves the declared sequence."""
    pass


class Sequencer(StateMachine):
    """
    State machine over a declared sequence of steps.

    Steps are declared with ``next`` (or ``first``) and may be:
    - a callable, invoked with the arguments of the transition that entered it
    - an Action (or ``Async``), whose success result feeds the next step
    - a ``Value``, handed to the next step as its only argument

    A callable step may return an Outcome to navigate explicitly:
    ``Continue(*args)``, ``AdvanceTo(state, *args)`` or ``Suspend()``.
    """

    DEFAULT_SUCCESS_STATE = COMPLETE
    DEFAULT_ERROR_STATE = ERROR

    def __init__(
        self,
        first: Any = None,
        *,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(name=name, logger=logger)

        self._state_sequence: list[str] = []
        self._state_index = -1

        self._on_complete: Optional[Callable[..., Any]] = None
        self._on_error: Optional[Callable[..., Any]] = None
        self._on_exit: Optional[Callable[[], Any]] = None
        self._exited = False
        self._delay_handle: Optional[asyncio.TimerHandle] = None

        self.add_state(COMPLETE, self._enter_complete)
        self.add_state(ERROR, self._enter_error)
        self.add_cancelback(self._on_cancelled)

        if first is not None:
            self.next(first)

    @property
    def state_sequence(self) -> list[str]:
        """Get declared step names in order."""
        return self._state_sequence.copy()

    @property
    def state_index(self) -> int:
        """Position of the last entered step (-1 before the first run)."""
        return self._state_index

    @property
    def delay_pending(self) -> bool:
        return self._delay_handle is not None

    # ==================== Declaration ====================

    def next(
        self,
        step: Any = None,
        *,
        name: Optional[str] = None,
        always_wait: bool = False,
    ) -> Any:
        """
        Declare the next step of the sequence.

        Works as a plain call or as a decorator (``@seq.next`` or
        ``@seq.next(always_wait=True)``). ``always_wait`` marks steps whose
        real trigger is an external callback: they never auto-advance.

        Raises:
            ValueError: If ``name`` is one of the reserved terminal states
        """
        if step is None:
            return lambda fn: self.next(fn, name=name, always_wait=always_wait)

        index = len(self._state_sequence)
        state = name or f"step{index + 1}"

        if state in RESERVED_STATES:
            raise ValueError(f"{state} is reserved and cannot be declared as a step")
        if self.has_state(state):
            self.logger.warning(f"A handler for {state} has already been defined on {self.name}")
            return step

        if isinstance(step, (Value, Async)) or not callable(step):
            declared = as_step_input(step)
        else:
            declared = step

        self._state_sequence.append(state)
        self.add_state(state, self._wrap_step(index, declared, always_wait))
        return step

    def first(self, step: Any = None, **kwargs: Any) -> Any:
        return self.next(step, **kwargs)

    def on_complete(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Set the completion callback; its return value becomes the success payload."""
        self._on_complete = fn
        return fn

    def on_error(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """
        Set the error callback; its return value becomes the error payload.

        The callback may recover instead by navigating elsewhere or by
        emitting an outcome itself.
        """
        self._on_error = fn
        return fn

    def ensure(self, fn: Callable[[], Any]) -> Callable[[], Any]:
        """Set the exit hook, run exactly once right before the machine ends."""
        self._on_exit = fn
        return fn

    def _wrap_step(self, index: int, step: Any, always_wait: bool) -> Callable[..., None]:
        def handler(*args: Any) -> None:
            self._state_index = index
            marker = self._activity_marker()

            try:
                if isinstance(step, (Value, Async)):
                    self.to_next(step)
                    return
                outcome = step(*args)
            except EngineError:
                raise
            except Exception as e:
                if self.terminated:
                    raise
                self.logger.error(f"Step {self.state} of {self.name} failed: {e}", exc_info=True)
                self.to_error(e)
                return

            self._after_step(outcome, marker, always_wait)

        handler.__name__ = getattr(step, "__name__", f"step{index + 1}")
        return handler

    def _after_step(self, outcome: Any, marker: tuple[int, int], always_wait: bool) -> None:
        navigated = self._activity_marker() != marker

        if isinstance(outcome, Suspend):
            return

        if isinstance(outcome, (Continue, AdvanceTo)):
            if navigated:
                self.logger.warning(
                    f"Step {self.state} of {self.name} navigated and returned "
                    f"{type(outcome).__name__}; ignoring the returned outcome"
                )
            elif isinstance(outcome, Continue):
                self._go(self.next_state(), *outcome.args)
            elif isinstance(outcome, AdvanceTo):
                self._go(outcome.state, *outcome.args)
            return

        if navigated or always_wait or self.delay_pending or self.terminated:
            return

        self.to_next()

    def _activity_marker(self) -> tuple[int, int]:
        return self.navigation_count, self._spawned

    # ==================== Navigation ====================

    def next_state(self) -> str:
        """State following the current step, ``complete`` past the end."""
        index = self._state_index + 1
        if index < len(self._state_sequence):
            return self._state_sequence[index]
        return COMPLETE

    def to_state(self, state: str, payload: Any = None, *, error: Optional[str] = None) -> Any:
        """
        Move to ``state``.

        ``payload`` decides how:
        - None: enter the state with no arguments
        - an Action or ``Async``: enter the state with the action's result
          once it succeeds (failures go to ``error`` when given, otherwise
          they bubble into the ``error`` state)
        - anything else (or ``Value``): enter the state with it as the only
          argument
        """
        step_input: Optional[StepInput] = as_step_input(payload)
        self._cancel_delay()

        if isinstance(step_input, Async):
            return self.transition(action=step_input.action, success=state, error=error)
        if isinstance(step_input, Value):
            return self.transition_to(state, step_input.value)
        return self.transition_to(state)

    def _go(self, state: str, *args: Any) -> Any:
        return self.transition_to(state, *args)

    def transition_now(self, *args: Any) -> Any:
        # Entering any state supersedes a pending delayed jump, including
        # entries driven by a child Action's outcome.
        self._cancel_delay()
        return super().transition_now(*args)

    def to_next(self, payload: Any = None, *, error: Optional[str] = None) -> Any:
        return self.to_state(self.next_state(), payload, error=error)

    def to_prev(self, payload: Any = None, *, error: Optional[str] = None) -> Any:
        """Move to the previous step; there is nothing before the first one."""
        index = self._state_index - 1
        if index < 0:
            return self.to_error(
                NavigationError(f"{self.name} cannot move before its first state")
            )
        return self.to_state(self._state_sequence[index], payload, error=error)

    def to_repeat(self, payload: Any = None, *, error: Optional[str] = None) -> Any:
        """Re-enter the current step."""
        if self._state_index < 0:
            return self.to_error(NavigationError(f"{self.name} has no step to repeat"))
        return self.to_state(self._state_sequence[self._state_index], payload, error=error)

    def to_complete(self, payload: Any = None) -> Any:
        return self.to_state(COMPLETE, payload)

    def to_error(self, payload: Any = None) -> Any:
        return self.to_state(ERROR, payload)

    def to_state_after(
        self,
        delay: float,
        state: str,
        payload: Any = None,
        *,
        error: Optional[str] = None,
    ) -> None:
        """
        Move to ``state`` after ``delay`` seconds.

        While the jump is pending the current step does not auto-advance.
        Any other navigation, or the end of the machine, cancels it.
        """
        self._cancel_delay()
        self._navigations += 1

        def fire() -> None:
            self._delay_handle = None
            self.to_state(state, payload, error=error)

        self._delay_handle = self.loop.call_later(delay, fire)

    def to_next_after(self, delay: float, payload: Any = None, *, error: Optional[str] = None) -> None:
        self.to_state_after(delay, self.next_state(), payload, error=error)

    def _cancel_delay(self) -> None:
        if self._delay_handle is not None:
            self._delay_handle.cancel()
            self._delay_handle = None

    # ==================== Lifecycle ====================

    def _start(self) -> None:
        self.to_next()

    def _enter_complete(self, *args: Any) -> None:
        self._finish(self._on_complete, args, self.emit_success)

    def _enter_error(self, *args: Any) -> None:
        self._finish(self._on_error, args, self.emit_error)

    def _finish(
        self,
        callback: Optional[Callable[..., Any]],
        args: tuple,
        emit: Callable[..., None],
    ) -> None:
        if self.terminated:
            self.logger.debug(f"{self.name} already {self.status.value}, not entering {self.state}")
            return

        if callback is not None:
            marker = self._activity_marker()
            result = callback(*args)
            if self.terminated or self._activity_marker() != marker:
                # The callback navigated or concluded the machine itself
                return
            args = (result,)

        emit(*args)

    def emit_success(self, *args: Any) -> None:
        if not self.terminated:
            self._cancel_delay()
            self._run_exit_hook()
        super().emit_success(*args)

    def emit_error(self, *args: Any) -> None:
        if not self.terminated:
            self._cancel_delay()
            self._run_exit_hook()
        super().emit_error(*args)

    def _on_cancelled(self) -> None:
        self._cancel_delay()
        self._run_exit_hook()

    def _run_exit_hook(self) -> None:
        if self._exited or self._on_exit is None:
            return
        self._exited = True
        self._on_exit()
