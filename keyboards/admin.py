from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from keyboards.common import add_action_buttons, detail_footer

ROLE_TITLES = {"admin": "admins", "rider": "riders"}


def admin_order_detail_kb(order_id: str, resolution, tab_index: int) -> InlineKeyboardMarkup:
    """
    Buttons come from the resolved actions, in their priority order.
    Refresh and back are always there.
    """
    builder = InlineKeyboardBuilder()
    add_action_buttons(builder, resolution, order_id, str(tab_index), prefix="adm-act")
    detail_footer(
        builder,
        refresh_cb=f"adm-order:{order_id}:{tab_index}",
        back_cb=f"adm-orders:{tab_index}:1",
    )
    builder.adjust(1)
    return builder.as_markup()


def admin_confirm_action_kb(kind: str, order_id: str, tab_index: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="✅ Confirm", callback_data=f"adm-yes:{kind}:{order_id}:{tab_index}")],
        [InlineKeyboardButton(text="↩️ Back", callback_data=f"adm-order:{order_id}:{tab_index}")],
    ])


def admin_cancel_reason_kb(order_id: str, tab_index: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="Payment not verified", callback_data=f"adm-cxl:p:{order_id}:{tab_index}")],
        [InlineKeyboardButton(text="Out of stock", callback_data=f"adm-cxl:s:{order_id}:{tab_index}")],
        [InlineKeyboardButton(text="Customer request", callback_data=f"adm-cxl:c:{order_id}:{tab_index}")],
        [InlineKeyboardButton(text="↩️ Keep order", callback_data=f"adm-order:{order_id}:{tab_index}")],
    ])


def admin_stats_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="📋 Orders", callback_data="orders")],
        [InlineKeyboardButton(text="⬅️ Back", callback_data="back-main")],
    ])


def staff_manage_kb(role: str, members: list[tuple[int, str]]) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for user_id, name in members:
        builder.button(text=f"❌ {name}", callback_data=f"staff:{role}:delete:{user_id}")
    builder.button(text=f"➕ Add {role}", callback_data=f"staff:{role}:add")
    builder.button(text="⬅️ Back", callback_data="back-main")
    builder.adjust(1)
    return builder.as_markup()


def staff_add_back_kb(role: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="⬅️ Back", callback_data=f"staff:{role}")]
    ])


def staff_confirm_delete_kb(role: str, user_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="✅ Yes, remove", callback_data=f"staff:{role}:delete-yes:{user_id}")],
        [InlineKeyboardButton(text="↩️ Cancel", callback_data=f"staff:{role}")],
    ])
