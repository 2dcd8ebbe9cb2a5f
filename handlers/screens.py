# handlers/screens.py
"""Helpers shared by the role routers: editing a screen in place and keeping it live."""
from typing import Awaitable, Callable, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, LinkPreviewOptions

from api.realtime import RealtimeHub
from utils.logger import get_logger

log = get_logger("[Bot.Screens]")

NO_PREVIEW = LinkPreviewOptions(is_disabled=True)


async def show(bot: Bot, chat_id: int, message_id: int, text: str,
               reply_markup: Optional[InlineKeyboardMarkup] = None) -> None:
    """Re-renders a screen. An identical render is not an error."""
    try:
        await bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            parse_mode="HTML",
            reply_markup=reply_markup,
            link_preview_options=NO_PREVIEW,
        )
    except TelegramBadRequest as e:
        if "message is not modified" in str(e).lower():
            return
        raise


def action_key(chat_id: int, order_id: str) -> tuple[int, str]:
    return chat_id, order_id


async def watch_order(hub: RealtimeHub, chat_id: int, order_id: str,
                      rerender: Callable[[], Awaitable[None]]) -> None:
    """Keeps one live subscription per chat; opening another order replaces it."""

    async def on_change(change: dict) -> None:
        log.debug(f"Order {order_id} changed ({change.get('table')} {change.get('type')}), re-rendering")
        try:
            await rerender()
        except TelegramBadRequest as e:
            # The message is gone or no longer ours; the prune job closes the subscription
            log.warning(f"Live re-render of order {order_id} failed: {e}")

    await hub.subscribe(chat_id, order_id, on_change)


async def stop_watching(hub: RealtimeHub, chat_id: int) -> None:
    await hub.unsubscribe(chat_id)
