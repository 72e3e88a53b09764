"""
Fan-out / fan-in coordination of state machine transitions.

A queue collects transitions and a final state. TransitionQueue starts every
transition in the same call and joins them with a completion counter;
LinearQueue chains them so each one starts only after the previous one's
target handler has run.

Counting rule shared by both queues: success always counts as completion,
an error only counts when the transition declared an explicit error target
(otherwise it bubbles and fails the machine).
"""

import functools
from typing import TYPE_CHECKING, Any, Callable, Optional

from action_engine.core.action import EngineError
from action_engine.core.models import TransitionSpec

if TYPE_CHECKING:
    from action_engine.core.action import Action
    from action_engine.core.state_machine import StateMachine


class QueueStartedError(EngineError):
    """Raised when a started queue is modified or started again."""

    def __init__(self, queue: "BaseQueue"):
        self.queue = queue
        super().__init__(f"Queue already started (final state: {queue.final_state})")


class BaseQueue:
    """
    Append-only list of transitions landing in a shared final state.

    Transitions may only be added before start(); start() runs once.
    """

    def __init__(self, state_machine: "StateMachine", final_state: str):
        self.state_machine = state_machine
        self.final_state = final_state
        self._transitions: list[TransitionSpec] = []
        self._started = False
        self._finished = False
        self._completed = 0

    def __len__(self) -> int:
        return len(self._transitions)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def finished(self) -> bool:
        """Check if the final state was entered."""
        return self._finished

    @property
    def completed_count(self) -> int:
        return self._completed

    @property
    def transitions(self) -> list[TransitionSpec]:
        return self._transitions.copy()

    def add_transition(
        self,
        spec: Optional[TransitionSpec] = None,
        *,
        action: Optional["Action"] = None,
        success: Optional[str] = None,
        error: Optional[str] = None,
        data: Any = None,
    ) -> TransitionSpec:
        """
        Append a transition.

        Raises:
            QueueStartedError: If the queue was already started
        """
        if self._started:
            raise QueueStartedError(self)

        if spec is None:
            spec = TransitionSpec(action=action, success=success, error=error, data=data)
        self._transitions.append(spec)
        return spec

    def start(self) -> None:
        """
        Start the queue. An empty queue enters the final state immediately.

        Raises:
            QueueStartedError: If the queue was already started
        """
        if self._started:
            raise QueueStartedError(self)
        self._started = True

        self.state_machine.logger.debug(
            f"Starting {type(self).__name__} on {self.state_machine.name} with "
            f"{len(self._transitions)} transitions, final state {self.final_state}"
        )

        if not self._transitions:
            self._finish()
            return

        self._start_transitions()

    def cancel(self) -> None:
        """Cancel every queued action."""
        for spec in self._transitions:
            spec.action.cancel()

    def _start_transitions(self) -> None:
        raise NotImplementedError

    def _watch(self, spec: TransitionSpec, listener: Callable[..., Any]) -> None:
        # Must be called after StateMachine.transition(spec) so the listener
        # runs after the transition's own listener, i.e. after the handler.
        spec.action.add_callback(listener)
        if spec.error is not None:
            spec.action.add_errback(listener)

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self.state_machine.transition_to(self.final_state)


class TransitionQueue(BaseQueue):
    """
    Parallel join: every transition starts at once.

    The machine enters the final state exactly once, after every transition
    has completed, whatever the arrival order.
    """

    def _start_transitions(self) -> None:
        for spec in self._transitions:
            self.state_machine.transition(spec)
            self._watch(spec, self._on_transition_complete)

    def _on_transition_complete(self, *args: Any) -> None:
        self._completed += 1
        remaining = len(self._transitions) - self._completed

        if remaining == 0:
            self.state_machine.logger.debug(f"All transitions complete, entering {self.final_state}")
            self._finish()
        else:
            self.state_machine.logger.debug(f"Transition complete, waiting for {remaining} more")


class LinearQueue(BaseQueue):
    """
    Serial chain: each transition starts after the previous one completed.

    Completion listeners are attached after the transition's own listener,
    so the next transition (or the final state) always follows the previous
    target handler.
    """

    def _start_transitions(self) -> None:
        self._wire(0)

    def _wire(self, index: int) -> None:
        spec = self._transitions[index]
        self.state_machine.transition(spec)
        self._watch(spec, functools.partial(self._on_transition_complete, index))

    def _on_transition_complete(self, index: int, *args: Any) -> None:
        self._completed += 1

        if index + 1 < len(self._transitions):
            self._wire(index + 1)
            return

        last = self._transitions[-1]
        targets = {last.success or self.state_machine.DEFAULT_SUCCESS_STATE}
        if last.error is not None:
            targets.add(last.error)

        if self.state_machine.state not in targets:
            self.state_machine.logger.warning(
                f"{self.state_machine.name} left {sorted(targets)} for "
                f"{self.state_machine.state}, not entering {self.final_state}"
            )
            return

        self._finish()
