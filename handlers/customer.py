from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery, ReplyKeyboardRemove

from api.errors import BackendError, OrderNotFound
from api.order_service import OrderFilters, OrderService
from api.profile_service import ProfileService
from api.realtime import RealtimeHub
from database.managers.user_link_manager import UserLinkManager
from handlers.screens import show, stop_watching, watch_order
from keyboards.common import error_kb, get_main_inline_keyboard, not_found_kb, orders_list_kb, share_phone_kb
from keyboards.customer import get_order_detail_kb
from utils.decorators import handle_telegram_error
from utils.logger import get_logger
from utils.order_actions import ViewerContext, resolve_actions
from utils.phone import normalize_phone
from utils.statuses import Role
from utils.tabs import resolve_tab_filter, tabs_for_role
from utils.views import NOT_FOUND_TEXT, error_text, order_detail_text, orders_list_text

log = get_logger("[Bot.Customer]")

customer_router = Router()

NOT_LINKED = "Link your Kitchen One account first: tap «🔗 Link my account»."


class LinkProfile(StatesGroup):
    phone = State()


def _menu_text(role: str) -> str:
    if role == Role.ADMIN:
        return "🛠 <b>Kitchen One · Admin</b>\n\nChoose an action:"
    if role == Role.RIDER:
        return "🛵 <b>Kitchen One · Rider</b>\n\nChoose an action:"
    return "🍕 <b>Kitchen One</b>\n\nTrack your orders here. Choose an action:"


# --- 1. START AND MENU ---

@customer_router.message(CommandStart())
async def cmd_start(msg: Message, state: FSMContext, role: str, user_link_manager: UserLinkManager):
    await state.clear()
    await user_link_manager.touch(msg.from_user.id, role)
    log.info(f"/start from {msg.from_user.id} ({role})")
    await msg.answer(_menu_text(role), parse_mode="HTML", reply_markup=get_main_inline_keyboard(role))


@customer_router.message(Command("menu"))
async def cmd_menu(msg: Message, state: FSMContext, role: str):
    await state.clear()
    await msg.answer(_menu_text(role), parse_mode="HTML", reply_markup=get_main_inline_keyboard(role))


@customer_router.callback_query(F.data == "back-main")
async def back_main(call: CallbackQuery, state: FSMContext, role: str, realtime_hub: RealtimeHub):
    await state.clear()
    await stop_watching(realtime_hub, call.message.chat.id)
    try:
        await call.message.edit_text(_menu_text(role), parse_mode="HTML", reply_markup=get_main_inline_keyboard(role))
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@customer_router.callback_query(F.data == "noop")
async def noop(call: CallbackQuery):
    await call.answer()


# --- 2. ACCOUNT LINKING ---

@customer_router.callback_query(F.data == "link-profile")
async def link_profile_start(call: CallbackQuery, state: FSMContext):
    await state.set_state(LinkProfile.phone)
    await call.message.answer(
        "Share the phone number you use in the Kitchen One app, or type it (e.g. 0917 123 4567).",
        reply_markup=share_phone_kb(),
    )
    await call.answer()


@customer_router.message(LinkProfile.phone, F.contact | F.text)
async def link_profile_phone(
        msg: Message,
        state: FSMContext,
        role: str,
        profile_service: ProfileService,
        user_link_manager: UserLinkManager,
):
    if msg.contact and msg.contact.user_id and msg.contact.user_id != msg.from_user.id:
        await msg.answer("Please share your own phone number.")
        return

    raw = msg.contact.phone_number if msg.contact else msg.text
    phone = normalize_phone(raw)
    if not phone:
        await msg.answer("That doesn't look like a valid phone number. Try again, e.g. 0917 123 4567.")
        return

    try:
        profile = await profile_service.find_by_phone(phone)
    except BackendError as e:
        await msg.answer(error_text(e.message), parse_mode="HTML")
        return

    if not profile:
        await msg.answer("No Kitchen One account uses this number. Check it and try again.")
        return

    await user_link_manager.touch(msg.from_user.id, role)
    await user_link_manager.link_profile(msg.from_user.id, profile["id"])
    await state.clear()

    name = profile.get("full_name") or "your account"
    await msg.answer(f"✅ Linked to {name}.", reply_markup=ReplyKeyboardRemove())
    await msg.answer(_menu_text(role), parse_mode="HTML", reply_markup=get_main_inline_keyboard(role))


# --- 3. MY ORDERS ---

async def _show_orders(call: CallbackQuery, order_service: OrderService, user_link_manager: UserLinkManager,
                       tab_index: int, page: int):
    profile_id = await user_link_manager.get_profile_id(call.from_user.id)
    if not profile_id:
        await call.answer(NOT_LINKED, show_alert=True)
        return

    tabs = tabs_for_role(Role.CUSTOMER)
    tab_index = tab_index if 0 <= tab_index < len(tabs) else 0
    tab = tabs[tab_index]

    try:
        orders = await order_service.get_user_orders(
            profile_id, OrderFilters(status=resolve_tab_filter(tab.key, Role.CUSTOMER))
        )
    except BackendError as e:
        await call.message.edit_text(
            error_text(e.message), parse_mode="HTML",
            reply_markup=error_kb(f"my-orders:{tab_index}:{page}", "back-main"),
        )
        await call.answer()
        return

    try:
        await call.message.edit_text(
            orders_list_text(orders, Role.CUSTOMER, tab),
            parse_mode="HTML",
            reply_markup=orders_list_kb(
                orders, Role.CUSTOMER, tabs, tab_index,
                list_prefix="my-orders", detail_prefix="order", back_cb="back-main", page=page,
            ),
        )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@customer_router.callback_query(F.data == "my-orders")
async def my_orders(call: CallbackQuery, order_service: OrderService, user_link_manager: UserLinkManager,
                    realtime_hub: RealtimeHub):
    await stop_watching(realtime_hub, call.message.chat.id)
    await _show_orders(call, order_service, user_link_manager, 0, 1)


@customer_router.callback_query(F.data.startswith("my-orders:"))
async def my_orders_tab(call: CallbackQuery, order_service: OrderService, user_link_manager: UserLinkManager,
                        realtime_hub: RealtimeHub):
    try:
        _, tab_str, page_str = call.data.split(":")
        tab_index, page = int(tab_str), int(page_str)
    except ValueError:
        tab_index, page = 0, 1
    await stop_watching(realtime_hub, call.message.chat.id)
    await _show_orders(call, order_service, user_link_manager, tab_index, page)


async def render_customer_order(bot: Bot, chat_id: int, message_id: int, order_service: OrderService,
                                order_id: str, tab_index: int, profile_id: str) -> bool:
    """Draws the order screen. Returns False when the not-found or error screen was drawn instead."""
    back_cb = f"my-orders:{tab_index}:1"
    try:
        order = await order_service.get_order_by_id(order_id)
    except OrderNotFound:
        await show(bot, chat_id, message_id, NOT_FOUND_TEXT, not_found_kb(back_cb))
        return False
    except BackendError as e:
        await show(bot, chat_id, message_id, error_text(e.message), error_kb(f"order:{order_id}:{tab_index}", back_cb))
        return False

    # Someone else's order looks exactly like a missing one
    if order.user_id != profile_id:
        log.warning(f"Profile {profile_id} tried to open order {order_id}")
        await show(bot, chat_id, message_id, NOT_FOUND_TEXT, not_found_kb(back_cb))
        return False

    resolution = resolve_actions(order, ViewerContext(Role.CUSTOMER, profile_id))
    await show(bot, chat_id, message_id, order_detail_text(order, Role.CUSTOMER, resolution),
               get_order_detail_kb(order.id, tab_index))
    return True


@customer_router.callback_query(F.data.startswith("order:"))
async def order_detail(
        call: CallbackQuery,
        bot: Bot,
        order_service: OrderService,
        user_link_manager: UserLinkManager,
        realtime_hub: RealtimeHub,
):
    try:
        _, order_id, tab_str = call.data.split(":")
        tab_index = int(tab_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return

    profile_id = await user_link_manager.get_profile_id(call.from_user.id)
    if not profile_id:
        await call.answer(NOT_LINKED, show_alert=True)
        return

    chat_id, message_id = call.message.chat.id, call.message.message_id

    async def rerender():
        await render_customer_order(bot, chat_id, message_id, order_service, order_id, tab_index, profile_id)

    try:
        found = await render_customer_order(bot, chat_id, message_id, order_service, order_id, tab_index, profile_id)
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)
        return

    if found:
        await watch_order(realtime_hub, chat_id, order_id, rerender)
