"""
Cancellable units of asynchronous work.

An Action defers its start procedure to the next event loop tick, reports
exactly one outcome (success, error or cancel) and owns the sub-Actions it
spawns: cancelling an Action cancels its whole subtree, and a failing child
can take its siblings down with it (bubbling).
"""

import asyncio
import functools
import logging
import uuid
from typing import Any, Callable, Optional

from action_engine.config import UnhandledErrorPolicy, get_settings
from action_engine.core.models import ActionEvent, ActionStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


Listener = Callable[..., Any]


class EngineError(Exception):
    """Base class for programming defects detected by the engine."""
    pass


class ActionError(EngineError):
    """Raised when an Action is driven outside its lifecycle."""
    pass


class ActionAlreadyStartedError(ActionError):
    """Raised when start() is called more than once."""

    def __init__(self, action: "Action"):
        self.action = action
        super().__init__(f"Action already started: {action.name}")


class UnhandledActionError(ActionError):
    """Raised when an error is emitted by an Action nobody listens to."""

    def __init__(self, action: "Action", error: Any):
        self.action = action
        self.error = error
        super().__init__(f"Unhandled error in action {action.name}: {error!r}")


class ActionFailedError(Exception):
    """Wraps a non-exception error payload so it can be raised."""

    def __init__(self, action: "Action", payload: tuple):
        self.action = action
        self.payload = payload
        detail = payload[0] if len(payload) == 1 else payload
        super().__init__(f"Action {action.name} failed: {detail!r}")


def _collapse(args: tuple) -> Any:
    """Turn an emitted argument tuple into a single result value."""
    if not args:
        return None
    if len(args) == 1:
        return args[0]
    return args


class Action:
    """
    A cancellable unit of asynchronous work.

    The start procedure is either passed as ``on_start`` (called with the
    action) or provided by overriding ``_start``. It must eventually call
    ``emit_success`` or ``emit_error`` unless the action gets cancelled.
    """

    def __init__(
        self,
        on_start: Optional[Callable[["Action"], Any]] = None,
        *,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.name = name or f"{type(self).__name__.lower()}-{uuid.uuid4().hex[:8]}"
        self.logger = logger or logging.getLogger(type(self).__module__)

        self._on_start = on_start
        self._status = ActionStatus.IDLE
        self._outcome: tuple = ()
        self._listeners: dict[ActionEvent, list[Listener]] = {
            event: [] for event in ActionEvent
        }
        self._sub_actions: list[Action] = []
        self._spawned = 0
        self._release_hooks: list[Callable[[], None]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self._status.value}>"

    # ==================== Lifecycle ====================

    @property
    def status(self) -> ActionStatus:
        """Get current lifecycle status."""
        return self._status

    @property
    def started(self) -> bool:
        return self._status != ActionStatus.IDLE

    @property
    def terminated(self) -> bool:
        """Check if an outcome (success, error or cancel) was reached."""
        return self._status in TERMINAL_STATUSES

    @property
    def cancelled(self) -> bool:
        return self._status == ActionStatus.CANCELLED

    @property
    def sub_actions(self) -> list["Action"]:
        """Get unfinished sub-Actions in registration order."""
        return self._sub_actions.copy()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """Loop this action was started on (or the running loop)."""
        return self._loop or asyncio.get_running_loop()

    def start(self) -> None:
        """
        Schedule the start procedure for the next loop tick.

        Never runs it inline, so listeners attached right after start() are
        always in place before anything can be emitted.

        Raises:
            ActionAlreadyStartedError: If the action was started before
        """
        if self._status != ActionStatus.IDLE:
            raise ActionAlreadyStartedError(self)

        self._loop = asyncio.get_running_loop()
        self._status = ActionStatus.PENDING
        self._loop.call_soon(self._run_start)

    def _run_start(self) -> None:
        if self._status != ActionStatus.PENDING:
            self.logger.debug(f"Skipping start of {self.name}: {self._status.value}")
            return

        self._status = ActionStatus.RUNNING
        try:
            self._start()
        except EngineError:
            raise
        except Exception as e:
            if self.terminated:
                # Raised by a listener after the outcome was delivered
                raise
            self.logger.error(f"Start procedure of {self.name} failed: {e}", exc_info=True)
            self.emit_error(e)

    def _start(self) -> None:
        """Start procedure. Override in subclasses or pass ``on_start``."""
        if self._on_start is not None:
            self._on_start(self)

    # ==================== Listeners ====================

    def add_listener(self, event: ActionEvent | str, listener: Listener) -> None:
        """Register a listener; listeners run in registration order."""
        self._listeners[ActionEvent(event)].append(listener)

    def add_callback(self, listener: Listener) -> None:
        self.add_listener(ActionEvent.SUCCESS, listener)

    def add_errback(self, listener: Listener) -> None:
        self.add_listener(ActionEvent.ERROR, listener)

    def add_cancelback(self, listener: Listener) -> None:
        self.add_listener(ActionEvent.CANCEL, listener)

    def listener_count(self, event: ActionEvent | str) -> int:
        return len(self._listeners[ActionEvent(event)])

    def _emit(self, event: ActionEvent, args: tuple) -> None:
        for listener in list(self._listeners[event]):
            listener(*args)

    # ==================== Outcomes ====================

    def emit_success(self, *args: Any) -> None:
        """Report success. Only the first outcome counts."""
        if not self._settle(ActionStatus.SUCCEEDED, ActionEvent.SUCCESS):
            return
        self._outcome = args
        try:
            self._emit(ActionEvent.SUCCESS, args)
        finally:
            self._release()

    def emit_error(self, *args: Any) -> None:
        """
        Report failure. Only the first outcome counts.

        An error with no listener is fatal: it is logged, then escalated
        according to the configured unhandled error policy.
        """
        if not self._settle(ActionStatus.FAILED, ActionEvent.ERROR):
            return
        self._outcome = args
        try:
            if not self._listeners[ActionEvent.ERROR]:
                self._handle_unhandled_error(args)
            self._emit(ActionEvent.ERROR, args)
        finally:
            self._release()

    def _settle(self, status: ActionStatus, event: ActionEvent) -> bool:
        if self._status == ActionStatus.CANCELLED:
            self.logger.debug(f"Ignoring {event.value} of cancelled action {self.name}")
            return False
        if self.terminated:
            self.logger.warning(
                f"Ignoring {event.value} of {self.name}: already {self._status.value}"
            )
            return False
        self._status = status
        return True

    def _handle_unhandled_error(self, args: tuple) -> None:
        error = args[0] if args else None

        if isinstance(error, BaseException):
            self.logger.error(
                f"Unhandled error in action {self.name}: {error!r}",
                exc_info=(type(error), error, error.__traceback__),
            )
        else:
            self.logger.error(f"Unhandled error in action {self.name}: {error!r}")

        if get_settings().unhandled_error_policy == UnhandledErrorPolicy.EXIT:
            raise SystemExit(f"Unhandled error in action {self.name}: {error!r}")

        if isinstance(error, BaseException):
            raise UnhandledActionError(self, error) from error
        raise UnhandledActionError(self, error)

    # ==================== Cancellation ====================

    def cancel(self) -> None:
        """
        Cancel this action and every tracked descendant.

        Idempotent. An action that already reached success or error still
        cancels its children but does not emit ``cancel``.
        """
        if self._status == ActionStatus.CANCELLED:
            return

        notify = not self.terminated
        if notify:
            self._status = ActionStatus.CANCELLED

        for sub_action in list(self._sub_actions):
            sub_action.cancel()

        if notify:
            self.logger.debug(f"Cancelled {self.name}")
            try:
                self._emit(ActionEvent.CANCEL, ())
            finally:
                self._release()

    def _release(self) -> None:
        # Runs once, after the outcome listeners
        hooks, self._release_hooks = self._release_hooks, []
        for hook in hooks:
            hook()

    # ==================== Sub-actions ====================

    def add_action(self, sub_action: "Action", bubble_errors: bool = True) -> None:
        """
        Track and immediately start a sub-Action.

        With ``bubble_errors`` a failing child cancels every other tracked
        sibling and the error is re-raised on this action. A sub-Action is
        forgotten as soon as it reaches its outcome.
        """
        self._sub_actions.append(sub_action)
        self._spawned += 1
        sub_action._release_hooks.append(functools.partial(self._forget, sub_action))

        if bubble_errors:
            sub_action.add_errback(functools.partial(self._on_sub_action_error, sub_action))

        if self.cancelled:
            self.logger.debug(f"{self.name} is cancelled, cancelling new sub-action {sub_action.name}")
            sub_action.cancel()
            return

        sub_action.start()

    def _forget(self, sub_action: "Action") -> None:
        if sub_action in self._sub_actions:
            self._sub_actions.remove(sub_action)

    def _on_sub_action_error(self, failed: "Action", *args: Any) -> None:
        self.logger.debug(f"Sub-action {failed.name} of {self.name} failed, cancelling siblings")
        for sub_action in list(self._sub_actions):
            if sub_action is not failed:
                sub_action.cancel()
        self._bubble_error(*args)

    def _bubble_error(self, *args: Any) -> None:
        """Re-raise a child's error on this action."""
        self.emit_error(*args)

    # ==================== Awaiting ====================

    def as_future(self) -> asyncio.Future:
        """
        Bridge the outcome into an asyncio future.

        Success resolves with the payload (None, a single value, or a tuple),
        error raises the payload exception (other payloads are wrapped in
        ActionFailedError), cancel cancels the future. Registering counts as
        handling the error.
        """
        future = asyncio.get_running_loop().create_future()

        def on_success(*args: Any) -> None:
            if not future.done():
                future.set_result(_collapse(args))

        def on_error(*args: Any) -> None:
            if future.done():
                return
            if args and isinstance(args[0], BaseException):
                future.set_exception(args[0])
            else:
                future.set_exception(ActionFailedError(self, args))

        def on_cancel() -> None:
            future.cancel()

        if self._status == ActionStatus.SUCCEEDED:
            on_success(*self._outcome)
        elif self._status == ActionStatus.FAILED:
            on_error(*self._outcome)
        elif self._status == ActionStatus.CANCELLED:
            on_cancel()
        else:
            self.add_callback(on_success)
            self.add_errback(on_error)
            self.add_cancelback(on_cancel)

        return future
