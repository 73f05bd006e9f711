"""Tests for session state and its publisher."""

import asyncio
import dataclasses

import pytest

from glass_companion.session import SessionState, SessionStatePublisher


class TestSessionState:
    """Test SessionState snapshots."""

    def test_default_is_unauthenticated(self):
        state = SessionState()
        assert state.is_authenticated is False
        assert state.primary_identifier is None
        assert state.is_loading is False
        assert state.error is None
        assert dict(state.profile) == {}

    def test_authenticated_requires_identifier(self):
        """An authenticated state is never observed without an identifier."""
        with pytest.raises(ValueError):
            SessionState(is_authenticated=True)

    def test_snapshots_are_immutable(self):
        state = SessionState(is_authenticated=True, primary_identifier="7", profile={"a": "b"})
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.error = "boom"  # type: ignore[misc]
        with pytest.raises(TypeError):
            state.profile["a"] = "c"  # type: ignore[index]

    def test_public_dict(self):
        state = SessionState(
            is_authenticated=True,
            primary_identifier="7",
            display_name="A B",
            profile={"user_email": "a@example.com"},
        )
        assert state.as_public_dict() == {
            "is_authenticated": True,
            "primary_identifier": "7",
            "display_name": "A B",
            "profile": {"user_email": "a@example.com"},
            "is_loading": False,
            "error": None,
        }


class TestSessionStatePublisher:
    """Test the observable cell."""

    def test_initial_value_is_default(self):
        assert SessionStatePublisher().value == SessionState()

    def test_subscribe_replays_current_value(self):
        publisher = SessionStatePublisher()
        seen = []
        publisher.subscribe(seen.append)
        publisher.publish(SessionState(is_loading=True))

        assert seen == [SessionState(), SessionState(is_loading=True)]

    def test_subscribe_without_replay(self):
        publisher = SessionStatePublisher()
        seen = []
        publisher.subscribe(seen.append, replay=False)
        assert seen == []

    def test_unsubscribe(self):
        publisher = SessionStatePublisher()
        seen = []
        unsubscribe = publisher.subscribe(seen.append, replay=False)
        unsubscribe()
        publisher.publish(SessionState(error="x"))

        assert seen == []
        unsubscribe()

    def test_failing_subscriber_does_not_block_others(self):
        publisher = SessionStatePublisher()
        seen = []

        def broken(state):
            raise RuntimeError("subscriber bug")

        publisher.subscribe(broken, replay=False)
        publisher.subscribe(seen.append, replay=False)
        publisher.publish(SessionState(error="x"))

        assert seen == [SessionState(error="x")]
        assert publisher.value.error == "x"

    def test_failing_subscriber_on_replay(self):
        publisher = SessionStatePublisher()

        def broken(state):
            raise RuntimeError("subscriber bug")

        unsubscribe = publisher.subscribe(broken)
        seen = []
        publisher.subscribe(seen.append, replay=False)
        publisher.publish(SessionState(error="x"))

        assert seen == [SessionState(error="x")]
        unsubscribe()

    async def test_wait_for(self):
        publisher = SessionStatePublisher()

        async def complete_later():
            await asyncio.sleep(0)
            publisher.publish(SessionState(is_loading=True))
            publisher.publish(SessionState(is_authenticated=True, primary_identifier="7"))

        task = asyncio.create_task(complete_later())
        state = await publisher.wait_for(lambda s: s.is_authenticated, timeout=1)
        await task

        assert state.primary_identifier == "7"

    async def test_wait_for_current_value(self):
        publisher = SessionStatePublisher()
        assert await publisher.wait_for(lambda s: not s.is_authenticated) == SessionState()

    async def test_wait_for_timeout(self):
        publisher = SessionStatePublisher()
        with pytest.raises(asyncio.TimeoutError):
            await publisher.wait_for(lambda s: s.is_authenticated, timeout=0.01)

    def test_view_is_read_only(self):
        publisher = SessionStatePublisher()
        view = publisher.view()
        assert not hasattr(view, "publish")
        publisher.publish(SessionState(error="x"))
        assert view.value.error == "x"
