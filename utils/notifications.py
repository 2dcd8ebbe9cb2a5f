# utils/notifications.py
import logging
from typing import Iterable, Optional

from aiogram import Bot, html
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from aiogram.types import InlineKeyboardMarkup

from database.managers.user_link_manager import UserLinkManager
from database.models.order import DeliveryOrder, Order
from keyboards.rider import announcement_kb
from utils.secrets import get_admin_ids, get_rider_ids
from utils.views import available_order_text

log = logging.getLogger("[Bot.Notify]")


async def _send_many(bot: Bot, chat_ids: Iterable[int], text: str,
                     reply_markup: Optional[InlineKeyboardMarkup] = None) -> int:
    sent = 0
    for chat_id in chat_ids:
        try:
            await bot.send_message(chat_id=chat_id, text=text, parse_mode="HTML", reply_markup=reply_markup)
            sent += 1
        except (TelegramBadRequest, TelegramForbiddenError) as e:
            # Blocked bot, wrong id and so on
            log.error(f"Could not notify {chat_id}: {e}")
        except Exception as e:
            log.exception(f"Unexpected error while notifying {chat_id}: {e}")
    return sent


async def notify_admins(bot: Bot, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None) -> int:
    admin_ids = get_admin_ids()
    if not admin_ids:
        log.warning("ADMIN_IDS is empty, notification not sent.")
        return 0
    return await _send_many(bot, admin_ids, text, reply_markup)


async def notify_riders(bot: Bot, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None) -> int:
    rider_ids = get_rider_ids()
    if not rider_ids:
        log.warning("RIDER_IDS is empty, notification not sent.")
        return 0
    return await _send_many(bot, rider_ids, text, reply_markup)


async def announce_order_to_riders(bot: Bot, delivery: DeliveryOrder) -> int:
    return await notify_riders(bot, available_order_text(delivery), announcement_kb(delivery.order.id))


async def notify_customer(bot: Bot, user_link_manager: UserLinkManager, order: Order, text: str) -> bool:
    """Messages the order's customer if their Telegram account is linked."""
    if not order.user_id:
        return False
    tg_user_id = await user_link_manager.get_tg_user_id(order.user_id)
    if not tg_user_id:
        log.debug(f"Customer of order {order.id} has no linked Telegram account")
        return False
    return await _send_many(bot, [tg_user_id], text) == 1


CUSTOMER_MESSAGES = {
    "accepted": "🤝 Order #{number} has been accepted by a rider and will be picked up soon.",
    "picked_up": "🛵 Your order #{number} is on the way!",
    "cod_verified": "💵 Your cash payment for order #{number} has been received.",
    "delivered": "🏁 Your order #{number} has been delivered. Thank you!",
    "payment_verified": "✅ Payment for order #{number} verified. We're preparing your order.",
    "cancelled": "❗️ Your order #{number} was cancelled{reason}.",
    "status": "📦 Order #{number}: {status}",
}


def customer_message(kind: str, order: Order, **extra) -> str:
    extra = {k: html.quote(str(v)) for k, v in extra.items()}
    return CUSTOMER_MESSAGES[kind].format(number=html.quote(order.order_number), **extra)


async def notify_order_delivered(bot: Bot, user_link_manager: UserLinkManager, order: Order) -> None:
    await notify_customer(bot, user_link_manager, order, customer_message("delivered", order))
    await notify_admins(bot, f"🏁 Order <b>#{html.quote(order.order_number)}</b> has been delivered.")
