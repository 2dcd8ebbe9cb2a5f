import asyncio
from unittest.mock import AsyncMock

import pytest

from utils.notifications import customer_message, notify_customer, notify_order_delivered, notify_riders

pytestmark = pytest.mark.unit


def test_customer_message(make_order):
    order = make_order()
    assert customer_message("picked_up", order) == "🛵 Your order #KO-1042 is on the way!"
    assert customer_message("cancelled", order, reason=" (Out of stock)") == \
        "❗️ Your order #KO-1042 was cancelled (Out of stock)."


def test_unlinked_customer_is_skipped(make_order):
    bot = AsyncMock()
    links = AsyncMock()
    links.get_tg_user_id.return_value = None

    assert not asyncio.run(notify_customer(bot, links, make_order(), "hello"))
    bot.send_message.assert_not_called()


def test_linked_customer_gets_message(make_order):
    bot = AsyncMock()
    links = AsyncMock()
    links.get_tg_user_id.return_value = 555

    assert asyncio.run(notify_customer(bot, links, make_order(), "hello"))
    links.get_tg_user_id.assert_awaited_once_with("profile-1")
    assert bot.send_message.call_args.kwargs["chat_id"] == 555


def test_failed_send_does_not_stop_the_rest(secrets_file):
    bot = AsyncMock()
    bot.send_message.side_effect = [RuntimeError("chat not found"), None]
    assert asyncio.run(notify_riders(bot, "ready")) == 1


def test_delivery_notifies_customer_and_admins(secrets_file, make_order):
    bot = AsyncMock()
    links = AsyncMock()
    links.get_tg_user_id.return_value = 555

    asyncio.run(notify_order_delivered(bot, links, make_order(status="delivered")))

    chat_ids = [c.kwargs["chat_id"] for c in bot.send_message.call_args_list]
    assert chat_ids == [555, 100]


def test_order_number_and_extras_are_escaped(make_order):
    order = make_order(order_number="KO<7>")
    assert customer_message("status", order, status="Ready & hot") == "📦 Order #KO&lt;7&gt;: Ready &amp; hot"
