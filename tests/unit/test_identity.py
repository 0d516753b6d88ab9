"""Tests for the in-memory identity source."""

from entitlement_engine.services.identity import AuthIdentity


class TestAuthIdentity:
    """Test identity changes and notification."""

    def test_initial_state(self):
        """Test signed-out and signed-in construction."""
        assert not AuthIdentity().is_signed_in
        assert AuthIdentity("user-1").current_user_id == "user-1"

    async def test_set_user_id_notifies(self):
        """Test that changes are delivered to listeners."""
        identity = AuthIdentity()
        received = []
        identity.subscribe(received.append)

        assert await identity.sign_in("user-1") is True
        assert await identity.sign_out() is True

        assert received == ["user-1", None]
        assert not identity.is_signed_in

    async def test_same_user_is_not_a_change(self):
        """Test that re-setting the current user does not notify."""
        identity = AuthIdentity("user-1")
        received = []
        identity.subscribe(received.append)

        assert await identity.set_user_id("user-1") is False
        assert received == []

    async def test_async_listeners_are_awaited(self):
        """Test that set_user_id waits for coroutine listeners."""
        identity = AuthIdentity()
        finished = []

        async def reinitialize(user_id):
            finished.append(user_id)

        identity.subscribe(reinitialize)
        await identity.sign_in("user-2")

        assert finished == ["user-2"]

    async def test_unsubscribe(self):
        """Test that unsubscribed listeners are not called."""
        identity = AuthIdentity()
        received = []
        identity.subscribe(received.append).unsubscribe()

        await identity.sign_in("user-1")

        assert received == []
