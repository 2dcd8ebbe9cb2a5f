from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from keyboards.common import detail_footer


def get_order_detail_kb(order_id: str, tab_index: int) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    detail_footer(
        builder,
        refresh_cb=f"order:{order_id}:{tab_index}",
        back_cb=f"my-orders:{tab_index}:1",
    )
    builder.adjust(1)
    return builder.as_markup()
