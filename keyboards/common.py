from math import ceil
from typing import Optional, Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from database.models.order import Order
from utils.order_actions import BUSY_REASON, ActionResolution
from utils.statuses import Role
from utils.tabs import Tab
from utils.views import order_button_text

PAGE_SIZE = 10

_ACTION_ICONS = {
    "cod": "💵",
    "pay": "✅",
    "acc": "🤝",
    "pick": "📦",
    "proof": "📸",
    "dlv": "🏁",
    "adv": "➡️",
    "cxl": "❌",
}


def get_main_inline_keyboard(role) -> InlineKeyboardMarkup:
    role = Role(role)
    if role == Role.ADMIN:
        buttons = [
            [InlineKeyboardButton(text="📋 Orders", callback_data="orders")],
            [InlineKeyboardButton(text="📊 Statistics", callback_data="adm-stats")],
            [InlineKeyboardButton(text="🛵 Manage riders", callback_data="staff:rider")],
            [InlineKeyboardButton(text="👥 Manage admins", callback_data="staff:admin")],
        ]
    elif role == Role.RIDER:
        buttons = [
            [InlineKeyboardButton(text="📦 Available orders", callback_data="rd-avail:1")],
            [InlineKeyboardButton(text="🛵 My deliveries", callback_data="rd-orders:0:1")],
        ]
    else:
        buttons = [
            [InlineKeyboardButton(text="📋 My orders", callback_data="my-orders")],
            [InlineKeyboardButton(text="🔗 Link my account", callback_data="link-profile")],
        ]
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def pagination_row(prefix: str, page: int, total_pages: int) -> list[InlineKeyboardButton]:
    """« ‹ n/N › » row; callback is f"{prefix}:{page}"."""
    prev_page = page - 1 if page > 1 else 1
    next_page = page + 1 if page < total_pages else total_pages
    return [
        InlineKeyboardButton(text="«", callback_data=f"{prefix}:1" if page > 1 else "noop"),
        InlineKeyboardButton(text="‹", callback_data=f"{prefix}:{prev_page}" if page > 1 else "noop"),
        InlineKeyboardButton(text=f"{page}/{total_pages}", callback_data="noop"),
        InlineKeyboardButton(text="›", callback_data=f"{prefix}:{next_page}" if page < total_pages else "noop"),
        InlineKeyboardButton(text="»", callback_data=f"{prefix}:{total_pages}" if page < total_pages else "noop"),
    ]


def paginate(items: Sequence, page: int, page_size: int = PAGE_SIZE) -> tuple[Sequence, int, int]:
    total_pages = max(1, ceil(len(items) / page_size))
    page = max(1, min(page, total_pages))  # clamp
    start = (page - 1) * page_size
    return items[start:start + page_size], page, total_pages


def tabs_rows(tabs: Sequence[Tab], active: int, prefix: str, counts: Optional[dict] = None,
              per_row: int = 3) -> list[list[InlineKeyboardButton]]:
    """Tab strip; the active tab is marked with a dot. Callback: f"{prefix}:{index}:1"."""
    buttons = []
    for index, tab in enumerate(tabs):
        count = f" ({counts[tab.key]})" if counts and tab.key in counts else ""
        mark = "• " if index == active else ""
        buttons.append(InlineKeyboardButton(text=f"{mark}{tab.label}{count}", callback_data=f"{prefix}:{index}:1"))
    return [buttons[i:i + per_row] for i in range(0, len(buttons), per_row)]


def orders_list_kb(
        orders: Sequence[Order],
        role,
        tabs: Sequence[Tab],
        tab_index: int,
        *,
        list_prefix: str,
        detail_prefix: str,
        back_cb: str,
        page: int = 1,
        counts: Optional[dict] = None,
) -> InlineKeyboardMarkup:
    page_orders, page, total_pages = paginate(orders, page)

    rows = tabs_rows(tabs, tab_index, list_prefix, counts)
    rows += [
        [InlineKeyboardButton(
            text=order_button_text(o, role),
            callback_data=f"{detail_prefix}:{o.id}:{tab_index}",
        )]
        for o in page_orders
    ]
    if total_pages > 1:
        rows.append(pagination_row(f"{list_prefix}:{tab_index}", page, total_pages))
    rows.append([InlineKeyboardButton(text="🔄 Refresh", callback_data=f"{list_prefix}:{tab_index}:{page}")])
    rows.append([InlineKeyboardButton(text="⬅️ Back", callback_data=back_cb)])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def add_action_buttons(builder: InlineKeyboardBuilder, resolution: ActionResolution, order_id: str,
                       tab_token: str, prefix: str) -> None:
    """One button per resolved action. Disabled ones stay visible but do nothing."""
    for action in resolution.actions:
        icon = _ACTION_ICONS.get(action.kind.value, "")
        if action.enabled:
            builder.button(text=f"{icon} {action.label}",
                           callback_data=f"{prefix}:{action.kind.value}:{order_id}:{tab_token}")
        else:
            icon = "⏳" if action.reason == BUSY_REASON else "🚫"
            builder.button(text=f"{icon} {action.label}", callback_data="noop")


def detail_footer(builder: InlineKeyboardBuilder, refresh_cb: str, back_cb: str) -> None:
    builder.button(text="🔄 Refresh", callback_data=refresh_cb)
    builder.button(text="⬅️ Back to list", callback_data=back_cb)


def not_found_kb(back_cb: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="⬅️ Back to list", callback_data=back_cb)],
    ])


def error_kb(retry_cb: str, back_cb: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="🔄 Try again", callback_data=retry_cb)],
        [InlineKeyboardButton(text="⬅️ Back", callback_data=back_cb)],
    ])


def share_phone_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text="📱 Share phone number", request_contact=True)]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
