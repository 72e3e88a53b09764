"""
Unit tests for state machine transitions.
"""

import asyncio
import logging

import pytest

from action_engine.core.action import Action
from action_engine.core.models import ActionStatus, TransitionSpec
from action_engine.core.state_machine import StateMachine, UndefinedStateError


class TestStates:
    """Tests for state registration and direct transitions."""

    def test_initial_state(self):
        """Test no state is current before the first transition."""
        sm = StateMachine()
        assert sm.state is None
        assert sm.history == []

    def test_first_registration_wins(self, caplog):
        """Test re-declaring a state is rejected with a warning."""
        sm = StateMachine(name="kitchen")
        calls = []
        sm.add_state("mix", lambda: calls.append("original"))

        with caplog.at_level(logging.WARNING):
            sm.add_state("mix", lambda: calls.append("replacement"))

        sm.transition_to("mix")

        assert calls == ["original"]
        assert "already been defined" in caplog.text

    def test_transition_to_passes_arguments(self):
        """Test handler receives the transition arguments."""
        sm = StateMachine()
        received = []
        sm.add_state("weigh", lambda *args: received.append(args))

        sm.transition_to("weigh", 200, "grams")

        assert sm.state == "weigh"
        assert received == [(200, "grams")]

    def test_undefined_state_is_fatal(self):
        """Test entering an unknown state raises."""
        sm = StateMachine()

        with pytest.raises(UndefinedStateError) as exc_info:
            sm.transition_to("nowhere")

        assert exc_info.value.state == "nowhere"

    def test_history_tracking(self):
        """Test that transition history is tracked."""
        sm = StateMachine()
        for state in ("a", "b", "c"):
            sm.add_state(state, lambda *args: None)

        sm.transition_to("a")
        sm.transition_to("b", 1)
        sm.transition_to("c", 1, 2)

        history = sm.history
        assert [t.to_state for t in history] == ["a", "b", "c"]
        assert [t.from_state for t in history] == [None, "a", "b"]
        assert history[2].arg_count == 2

    def test_history_limit(self, monkeypatch):
        """Test history keeps only the configured number of records."""
        from action_engine.config import get_settings

        monkeypatch.setenv("ACTION_ENGINE_HISTORY_LIMIT", "2")
        get_settings.cache_clear()

        sm = StateMachine()
        sm.add_state("loop", lambda: None)
        for _ in range(5):
            sm.transition_to("loop")

        assert len(sm.history) == 2

    def test_cancelled_machine_ignores_transitions(self):
        """Test no handler runs after cancel."""
        sm = StateMachine()
        calls = []
        sm.add_state("late", lambda: calls.append(True))

        sm.cancel()
        sm.transition_to("late")

        assert calls == []


class TestActionTransitions:
    """Tests for transitions triggered by child actions."""

    @pytest.mark.asyncio
    async def test_success_enters_target_with_result_and_data(self):
        """Test child result plus extra data reach the success state."""
        sm = StateMachine()
        received = []

        def done(*args):
            received.append(args)
            sm.emit_success(*args)

        sm.add_state("weighed", done)
        future = sm.as_future()

        child = Action(lambda a: a.emit_success(250))
        sm.transition(action=child, success="weighed", data="flour")

        assert await asyncio.wait_for(future, 1) == (250, "flour")
        assert received == [(250, "flour")]
        assert sm.sub_actions == []

    @pytest.mark.asyncio
    async def test_default_success_state(self):
        """Test the success target defaults to 'success'."""
        sm = StateMachine()
        sm.add_state("success", lambda value: sm.emit_success(value))
        future = sm.as_future()

        sm.transition(TransitionSpec(action=Action(lambda a: a.emit_success("ok"))))

        assert await asyncio.wait_for(future, 1) == "ok"

    @pytest.mark.asyncio
    async def test_explicit_error_target_handles_failure_locally(self, drain):
        """Test an explicit error target suppresses bubbling."""
        sm = StateMachine()
        handled = []
        sm.add_state("retry", lambda error: handled.append(error))
        sibling = Action()
        sm.add_action(sibling)

        error = ConnectionError("oven offline")
        sm.transition(action=Action(lambda a: a.emit_error(error)), success="baked", error="retry")
        await drain()

        assert handled == [error]
        assert sm.state == "retry"
        assert not sibling.terminated
        assert not sm.terminated

    @pytest.mark.asyncio
    async def test_failure_without_error_target_bubbles_into_error_state(self, drain):
        """Test an unrouted failure cancels siblings and enters the error state."""
        sm = StateMachine()
        seen = []

        def on_error(error):
            seen.append(error)
            sm.emit_error(error)

        sm.add_state("error", on_error)
        future = sm.as_future()

        sibling = Action()
        sm.add_action(sibling, bubble_errors=False)
        error = KeyError("sugar")
        sm.transition(action=Action(lambda a: a.emit_error(error)), success="next")

        with pytest.raises(KeyError):
            await asyncio.wait_for(future, 1)

        assert seen == [error]
        assert sibling.cancelled
        assert sm.state == "error"

    @pytest.mark.asyncio
    async def test_failure_without_error_state_fails_machine(self):
        """Test a machine with no error state re-emits the child's error."""
        sm = StateMachine()
        future = sm.as_future()

        sm.transition(action=Action(lambda a: a.emit_error(ValueError("bad batch"))))

        with pytest.raises(ValueError, match="bad batch"):
            await asyncio.wait_for(future, 1)
        assert sm.status == ActionStatus.FAILED

    @pytest.mark.asyncio
    async def test_cancelling_machine_cancels_pending_transition(self, drain):
        """Test the child of a pending transition is cancelled with the machine."""
        sm = StateMachine()
        calls = []
        sm.add_state("never", lambda *args: calls.append(args))

        child = Action()
        sm.transition(action=child, success="never")
        await drain()

        sm.cancel()
        child.emit_success("late")

        assert child.cancelled
        assert calls == []

    def test_transition_requires_action(self):
        """Test a transition without an action is rejected."""
        sm = StateMachine()

        with pytest.raises(ValueError):
            sm.transition(success="anywhere")
