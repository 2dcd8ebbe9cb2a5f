import asyncio

import pytest

from handlers.screens import action_key
from utils.locks import ActionGuard, ActionInProgress

pytestmark = pytest.mark.unit


def test_second_acquire_is_refused():
    guard = ActionGuard()
    key = action_key(42, "order-1")
    assert guard.acquire(key)
    assert not guard.acquire(key)
    assert guard.is_busy(key)
    assert not guard.is_busy(action_key(42, "order-2"))

    guard.release(key)
    assert not guard.is_busy(key)
    assert len(guard) == 0


def test_hold_refuses_while_busy_and_releases_on_error():
    guard = ActionGuard()
    key = action_key(7, "order-1")

    async def scenario():
        with pytest.raises(ValueError):
            async with guard.hold(key):
                assert guard.is_busy(key)
                with pytest.raises(ActionInProgress):
                    async with guard.hold(key):
                        pass
                raise ValueError("mutation failed")
        assert not guard.is_busy(key)

    asyncio.run(scenario())
