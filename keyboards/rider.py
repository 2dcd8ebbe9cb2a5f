from typing import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from database.models.order import DeliveryOrder
from keyboards.common import add_action_buttons, detail_footer, paginate, pagination_row
from utils.formatting import format_money

# Tab token for orders opened from the "Available" list
AVAILABLE = "a"


def back_to_list_cb(tab_token: str) -> str:
    return "rd-avail:1" if tab_token == AVAILABLE else f"rd-orders:{tab_token}:1"


def available_orders_kb(orders: Sequence[DeliveryOrder], page: int = 1) -> InlineKeyboardMarkup:
    page_orders, page, total_pages = paginate(orders, page)
    rows = [
        [InlineKeyboardButton(
            text=f"📦 #{d.order.order_number} · {format_money(d.order.total_amount)} · {d.customer_name or 'Customer'}",
            callback_data=f"rd-order:{d.order.id}:{AVAILABLE}",
        )]
        for d in page_orders
    ]
    if total_pages > 1:
        rows.append(pagination_row("rd-avail", page, total_pages))
    rows.append([InlineKeyboardButton(text="🔄 Refresh", callback_data=f"rd-avail:{page}")])
    rows.append([InlineKeyboardButton(text="⬅️ Back", callback_data="back-main")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def rider_order_detail_kb(order_id: str, resolution, tab_token: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    add_action_buttons(builder, resolution, order_id, tab_token, prefix="rd-act")
    detail_footer(
        builder,
        refresh_cb=f"rd-order:{order_id}:{tab_token}",
        back_cb=back_to_list_cb(tab_token),
    )
    builder.adjust(1)
    return builder.as_markup()


def cod_confirm_kb(order_id: str, tab_token: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="💵 Yes, cash received", callback_data=f"rd-yes:cod:{order_id}:{tab_token}")],
        [InlineKeyboardButton(text="↩️ Not yet", callback_data=f"rd-order:{order_id}:{tab_token}")],
    ])


def proof_source_kb(order_id: str, intent: str, tab_token: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="📷 Take photo", callback_data=f"rd-src:c:{intent}:{order_id}:{tab_token}")],
        [InlineKeyboardButton(text="🖼 Choose from gallery", callback_data=f"rd-src:g:{intent}:{order_id}:{tab_token}")],
        [InlineKeyboardButton(text="↩️ Cancel", callback_data=f"rd-order:{order_id}:{tab_token}")],
    ])


def capture_cancel_kb(order_id: str, tab_token: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="❌ Cancel", callback_data=f"rd-cap-x:{order_id}:{tab_token}")]
    ])


def announcement_kb(order_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="👀 View order", callback_data=f"rd-order:{order_id}:{AVAILABLE}")]
    ])
