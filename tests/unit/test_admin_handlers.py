import asyncio
from unittest.mock import AsyncMock

import pytest

from handlers.admin import _run_admin_action, staff_delete_confirm, staff_delete_yes
from handlers.screens import action_key
from utils.locks import ActionGuard
from utils.order_actions import ActionKind

pytestmark = pytest.mark.unit


def _call(data: str, user_id: int = 100) -> AsyncMock:
    call = AsyncMock()
    call.data = data
    call.from_user.id = user_id
    return call


def test_staff_removal_rejects_unknown_role():
    call = _call("staff:owner:delete:200")
    asyncio.run(staff_delete_confirm.__wrapped__(call))
    call.answer.assert_awaited_once_with("Bad request.", show_alert=True)
    call.message.edit_text.assert_not_awaited()


def test_staff_removal_confirm_for_rider():
    call = _call("staff:rider:delete:200")
    asyncio.run(staff_delete_confirm.__wrapped__(call))
    text = call.message.edit_text.call_args.args[0]
    assert text == "Remove <code>200</code> from riders?"


def test_staff_removal_yes_rejects_unknown_role_and_self(secrets_file):
    for data in ("staff:owner:delete-yes:200", "staff:admin:delete-yes:100"):
        call = _call(data)
        asyncio.run(staff_delete_yes.__wrapped__(call, AsyncMock()))
        call.answer.assert_awaited_once_with("Bad request.", show_alert=True)
    assert "100" in secrets_file.read_text(encoding="utf-8")


def test_admin_action_is_refused_while_another_runs():
    guard = ActionGuard()
    guard.acquire(action_key(1, "o-1"))
    call = _call("adm-yes:pay:o-1:0")
    call.message.chat.id = 1
    links = AsyncMock()
    links.get_profile_id.return_value = None
    order_service = AsyncMock()

    asyncio.run(_run_admin_action(call, AsyncMock(), order_service, links, guard,
                                  ActionKind.VERIFY_PAYMENT, "o-1", 0))

    call.answer.assert_awaited_once_with("Another action is in progress.", show_alert=True)
    order_service.verify_payment.assert_not_awaited()


def test_stale_admin_action_releases_the_order(make_order):
    guard = ActionGuard()
    call = _call("adm-yes:pay:o-1:0")
    call.message.chat.id = 1
    links = AsyncMock()
    links.get_profile_id.return_value = None
    order_service = AsyncMock()
    order_service.get_order_by_id.return_value = make_order(id="o-1", status="delivered")

    asyncio.run(_run_admin_action(call, AsyncMock(), order_service, links, guard,
                                  ActionKind.VERIFY_PAYMENT, "o-1", 0))

    call.answer.assert_awaited_once_with("This action is no longer available.", show_alert=True)
    assert not guard.is_busy(action_key(1, "o-1"))
