from aiogram import Router, F, Bot, html
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery

from api.errors import BackendError, OrderNotFound
from api.order_service import OrderFilters, OrderService
from api.realtime import RealtimeHub
from database.managers.user_link_manager import UserLinkManager
from handlers.screens import action_key, show, stop_watching, watch_order
from keyboards.admin import (
    ROLE_TITLES,
    admin_cancel_reason_kb,
    admin_confirm_action_kb,
    admin_order_detail_kb,
    admin_stats_kb,
    staff_add_back_kb,
    staff_confirm_delete_kb,
    staff_manage_kb,
)
from keyboards.common import error_kb, not_found_kb, orders_list_kb
from utils.decorators import admin_only, handle_telegram_error
from utils.formatting import format_money
from utils.locks import ActionGuard, ActionInProgress
from utils.logger import get_logger
from utils.notifications import customer_message, notify_customer
from utils.order_actions import ActionKind, ViewerContext, resolve_actions
from utils.secrets import ROLE_KEYS, add_role_member, get_admin_ids, get_rider_ids, remove_role_member
from utils.status_display import get_status_display
from utils.statuses import Role
from utils.tabs import resolve_tab_filter, tabs_for_role
from utils.views import NOT_FOUND_TEXT, error_text, order_detail_text, orders_list_text

log = get_logger("[Bot.Admin]")

admin_router = Router()

CANCEL_REASONS = {
    "p": "Payment not verified",
    "s": "Out of stock",
    "c": "Customer request",
}

CONFIRM_TEXTS = {
    ActionKind.VERIFY_PAYMENT: "Mark payment as verified and move order to Preparing?",
    ActionKind.ADVANCE_STATUS: "Change the order status to <b>{label}</b>?",
}


class StaffManagement(StatesGroup):
    waiting_for_user_id = State()


def _parse_order_cb(data: str) -> tuple[str, str, int]:
    """'<prefix>:<kind>:<order_id>:<tab>' -> (kind, order_id, tab)."""
    _, kind, order_id, tab_str = data.split(":")
    return kind, order_id, int(tab_str)


async def _admin_actor(call: CallbackQuery, user_link_manager: UserLinkManager) -> tuple[str | None, str]:
    """Backend profile of the admin (may be unlinked) and a label for the logs."""
    profile_id = await user_link_manager.get_profile_id(call.from_user.id)
    return profile_id, profile_id or f"tg:{call.from_user.id}"


# --- 1. ORDERS LIST ---

async def _show_admin_orders(call: CallbackQuery, order_service: OrderService, tab_index: int, page: int):
    tabs = tabs_for_role(Role.ADMIN)
    tab_index = tab_index if 0 <= tab_index < len(tabs) else 0
    tab = tabs[tab_index]

    try:
        stats = await order_service.get_order_stats()
        orders = await order_service.get_admin_orders(
            OrderFilters(status=resolve_tab_filter(tab.key, Role.ADMIN))
        )
    except BackendError as e:
        await call.message.edit_text(
            error_text(e.message), parse_mode="HTML",
            reply_markup=error_kb(f"adm-orders:{tab_index}:{page}", "back-main"),
        )
        await call.answer()
        return

    counts = {**stats.by_status, "all": stats.total_orders}
    try:
        await call.message.edit_text(
            orders_list_text(orders, Role.ADMIN, tab, counts),
            parse_mode="HTML",
            reply_markup=orders_list_kb(
                orders, Role.ADMIN, tabs, tab_index,
                list_prefix="adm-orders", detail_prefix="adm-order", back_cb="back-main",
                page=page, counts=counts,
            ),
        )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@admin_router.callback_query(F.data == "orders")
@admin_only
async def adm_orders_menu(call: CallbackQuery, order_service: OrderService, realtime_hub: RealtimeHub):
    await stop_watching(realtime_hub, call.message.chat.id)
    await _show_admin_orders(call, order_service, 0, 1)


@admin_router.callback_query(F.data.startswith("adm-orders:"))
@admin_only
async def adm_orders_tab(call: CallbackQuery, order_service: OrderService, realtime_hub: RealtimeHub):
    try:
        _, tab_str, page_str = call.data.split(":")
        tab_index, page = int(tab_str), int(page_str)
    except ValueError:
        tab_index, page = 0, 1
    await stop_watching(realtime_hub, call.message.chat.id)
    await _show_admin_orders(call, order_service, tab_index, page)


@admin_router.callback_query(F.data == "adm-stats")
@admin_only
async def adm_stats(call: CallbackQuery, order_service: OrderService):
    try:
        stats = await order_service.get_order_stats()
    except BackendError as e:
        await call.answer(e.message, show_alert=True)
        return

    lines = ["📊 <b>Statistics</b>", ""]
    for status, count in sorted(stats.by_status.items()):
        lines.append(f"{get_status_display(status, Role.ADMIN).badge()}: <code>{count}</code>")
    lines += [
        "",
        f"Total orders: <code>{stats.total_orders}</code>",
        f"Revenue: <code>{format_money(stats.total_revenue)}</code>",
        f"Average order: <code>{format_money(stats.average_order_value)}</code>",
        f"Completion rate: <code>{stats.completion_rate:.1f}%</code>",
    ]
    try:
        await call.message.edit_text("\n".join(lines), parse_mode="HTML", reply_markup=admin_stats_kb())
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


# --- 2. ORDER DETAIL ---

async def render_admin_order(bot: Bot, chat_id: int, message_id: int, order_service: OrderService,
                             action_guard: ActionGuard, order_id: str, tab_index: int) -> bool:
    back_cb = f"adm-orders:{tab_index}:1"
    try:
        order = await order_service.get_order_by_id(order_id)
    except OrderNotFound:
        await show(bot, chat_id, message_id, NOT_FOUND_TEXT, not_found_kb(back_cb))
        return False
    except BackendError as e:
        await show(bot, chat_id, message_id, error_text(e.message),
                   error_kb(f"adm-order:{order_id}:{tab_index}", back_cb))
        return False

    ctx = ViewerContext(Role.ADMIN, busy=action_guard.is_busy(action_key(chat_id, order_id)))
    resolution = resolve_actions(order, ctx)
    await show(bot, chat_id, message_id, order_detail_text(order, Role.ADMIN, resolution),
               admin_order_detail_kb(order.id, resolution, tab_index))
    return True


@admin_router.callback_query(F.data.startswith("adm-order:"))
@admin_only
async def adm_order_detail(call: CallbackQuery, bot: Bot, order_service: OrderService,
                           realtime_hub: RealtimeHub, action_guard: ActionGuard):
    try:
        _, order_id, tab_str = call.data.split(":")
        tab_index = int(tab_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return

    chat_id, message_id = call.message.chat.id, call.message.message_id

    async def rerender():
        await render_admin_order(bot, chat_id, message_id, order_service, action_guard, order_id, tab_index)

    try:
        found = await render_admin_order(bot, chat_id, message_id, order_service, action_guard, order_id, tab_index)
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)
        return

    if found:
        await watch_order(realtime_hub, chat_id, order_id, rerender)


# --- 3. ACTIONS ---

async def _current_action(order_service: OrderService, order_id: str, kind: ActionKind):
    """Re-resolves against a fresh snapshot; a stale button must not act."""
    order = await order_service.get_order_by_id(order_id)
    action = resolve_actions(order, ViewerContext(Role.ADMIN)).find(kind)
    if action is None or not action.enabled:
        return order, None
    return order, action


@admin_router.callback_query(F.data.startswith("adm-act:"))
@admin_only
async def adm_order_action(call: CallbackQuery, order_service: OrderService):
    try:
        kind_str, order_id, tab_index = _parse_order_cb(call.data)
        kind = ActionKind(kind_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return

    try:
        order, action = await _current_action(order_service, order_id, kind)
    except BackendError as e:
        await call.answer(e.message, show_alert=True)
        return

    if action is None:
        await call.answer("This action is no longer available.", show_alert=True)
        return

    try:
        if kind == ActionKind.CANCEL_ORDER:
            await call.message.edit_text(
                f"Cancel order <b>#{html.quote(order.order_number)}</b>? The customer will be notified.\n\nChoose a reason:",
                parse_mode="HTML",
                reply_markup=admin_cancel_reason_kb(order_id, tab_index),
            )
        else:
            label = get_status_display(action.target_status, Role.ADMIN).label if action.target_status else ""
            await call.message.edit_text(
                CONFIRM_TEXTS[kind].format(label=label),
                parse_mode="HTML",
                reply_markup=admin_confirm_action_kb(kind.value, order_id, tab_index),
            )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


async def _run_admin_action(call: CallbackQuery, bot: Bot, order_service: OrderService,
                            user_link_manager: UserLinkManager, action_guard: ActionGuard,
                            kind: ActionKind, order_id: str, tab_index: int, reason: str | None = None):
    chat_id, message_id = call.message.chat.id, call.message.message_id
    profile_id, actor = await _admin_actor(call, user_link_manager)
    try:
        async with action_guard.hold(action_key(chat_id, order_id)):
            order, action = await _current_action(order_service, order_id, kind)
            if action is None:
                await call.answer("This action is no longer available.", show_alert=True)
                return

            if kind == ActionKind.VERIFY_PAYMENT:
                await order_service.verify_payment(order_id, profile_id)
                done = "Payment verified. Order moved to Preparing."
                note = customer_message("payment_verified", order)
            elif kind == ActionKind.ADVANCE_STATUS:
                await order_service.update_order_status(order_id, action.target_status, actor)
                label = get_status_display(action.target_status, Role.CUSTOMER).label
                done, note = "Status updated.", customer_message("status", order, status=label)
            else:
                await order_service.cancel_order(order_id, reason, actor)
                done, note = "Order cancelled.", customer_message("cancelled", order, reason=f": {reason}")
    except ActionInProgress:
        await call.answer("Another action is in progress.", show_alert=True)
        return
    except BackendError as e:
        log.error(f"Admin action {kind.value} on order {order_id} failed: {e.message}")
        await call.answer(e.message, show_alert=True)
        return

    await notify_customer(bot, user_link_manager, order, note)
    try:
        await render_admin_order(bot, chat_id, message_id, order_service, action_guard, order_id, tab_index)
        await call.answer(done)
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@admin_router.callback_query(F.data.startswith("adm-yes:"))
@admin_only
async def adm_order_action_yes(call: CallbackQuery, bot: Bot, order_service: OrderService,
                               user_link_manager: UserLinkManager, action_guard: ActionGuard):
    try:
        kind_str, order_id, tab_index = _parse_order_cb(call.data)
        kind = ActionKind(kind_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return
    if kind not in (ActionKind.VERIFY_PAYMENT, ActionKind.ADVANCE_STATUS):
        await call.answer("Bad request.", show_alert=True)
        return
    await _run_admin_action(call, bot, order_service, user_link_manager, action_guard, kind, order_id, tab_index)


@admin_router.callback_query(F.data.startswith("adm-cxl:"))
@admin_only
async def adm_order_cancel_yes(call: CallbackQuery, bot: Bot, order_service: OrderService,
                               user_link_manager: UserLinkManager, action_guard: ActionGuard):
    try:
        reason_code, order_id, tab_index = _parse_order_cb(call.data)
        reason = CANCEL_REASONS[reason_code]
    except (ValueError, KeyError):
        await call.answer("Bad request.", show_alert=True)
        return
    await _run_admin_action(call, bot, order_service, user_link_manager, action_guard,
                            ActionKind.CANCEL_ORDER, order_id, tab_index, reason=reason)


# --- 4. STAFF (ADMINS AND RIDERS) ---

async def get_staff_list_text_and_data(bot: Bot, role: str) -> tuple[str, list[tuple[int, str]]]:
    ids = get_admin_ids() if role == "admin" else get_rider_ids()
    members = []
    text_lines = [f"<b>Current {ROLE_TITLES[role]}:</b>"]

    if not ids:
        text_lines.append("\n<i>The list is empty.</i>")
    else:
        for user_id in ids:
            try:
                chat = await bot.get_chat(user_id)
                username = f" (@{chat.username})" if chat.username else ""
                text_lines.append(f"• {html.quote(chat.full_name)}{username} - <code>ID: {user_id}</code>")
                members.append((user_id, chat.full_name))
            except TelegramBadRequest:
                text_lines.append(f"• <code>ID: {user_id}</code> (unavailable)")
                members.append((user_id, f"ID {user_id}"))

    text_lines.append(f"\nAdd {ROLE_TITLES[role]} by Telegram user ID or tap a name to remove it.")
    return "\n".join(text_lines), members


@admin_router.callback_query(F.data.in_({"staff:admin", "staff:rider"}))
@admin_only
async def staff_menu(call: CallbackQuery, state: FSMContext, bot: Bot):
    await state.clear()
    role = call.data.split(":")[1]
    text, members = await get_staff_list_text_and_data(bot, role)
    try:
        await call.message.edit_text(text, parse_mode="HTML", reply_markup=staff_manage_kb(role, members))
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call, state=state)


@admin_router.callback_query(F.data.startswith("staff:") & F.data.endswith(":add"))
@admin_only
async def staff_add_start(call: CallbackQuery, state: FSMContext):
    role = call.data.split(":")[1]
    if role not in ROLE_KEYS:
        await call.answer("Bad request.", show_alert=True)
        return
    await state.set_state(StaffManagement.waiting_for_user_id)
    await state.update_data(staff_role=role)
    await call.message.edit_text(
        f"Send the <b>Telegram user ID</b> of the new {role}.\n\n"
        "<i>They can get it from @userinfobot.</i>",
        parse_mode="HTML",
        reply_markup=staff_add_back_kb(role),
    )
    await call.answer()


@admin_router.message(StaffManagement.waiting_for_user_id)
@admin_only
async def staff_add_id(msg: Message, state: FSMContext, bot: Bot):
    try:
        new_id = int((msg.text or "").strip())
    except ValueError:
        await msg.answer("The ID must be a number. Try again.")
        return

    role = (await state.get_data()).get("staff_role", "rider")
    if add_role_member(role, new_id):
        await msg.answer(f"✅ User <code>{new_id}</code> added to {ROLE_TITLES[role]}.", parse_mode="HTML")
    else:
        await msg.answer(f"⚠️ User <code>{new_id}</code> is already in {ROLE_TITLES[role]}.", parse_mode="HTML")
    await state.clear()

    text, members = await get_staff_list_text_and_data(bot, role)
    await msg.answer(text, parse_mode="HTML", reply_markup=staff_manage_kb(role, members))


@admin_router.callback_query(F.data.startswith("staff:") & F.data.contains(":delete:"))
@admin_only
async def staff_delete_confirm(call: CallbackQuery):
    try:
        _, role, _, user_str = call.data.split(":")
        user_id = int(user_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return
    if role not in ROLE_KEYS:
        await call.answer("Bad request.", show_alert=True)
        return

    if role == "admin" and call.from_user.id == user_id:
        await call.answer("You can't remove yourself.", show_alert=True)
        return

    await call.message.edit_text(
        f"Remove <code>{user_id}</code> from {ROLE_TITLES[role]}?",
        parse_mode="HTML",
        reply_markup=staff_confirm_delete_kb(role, user_id),
    )
    await call.answer()


@admin_router.callback_query(F.data.startswith("staff:") & F.data.contains(":delete-yes:"))
@admin_only
async def staff_delete_yes(call: CallbackQuery, bot: Bot):
    try:
        _, role, _, user_str = call.data.split(":")
        user_id = int(user_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return
    if role not in ROLE_KEYS or (role == "admin" and call.from_user.id == user_id):
        await call.answer("Bad request.", show_alert=True)
        return

    if remove_role_member(role, user_id):
        await call.answer(f"User {user_id} removed.", show_alert=True)
    else:
        await call.answer("This user is no longer in the list.", show_alert=True)

    text, members = await get_staff_list_text_and_data(bot, role)
    await call.message.edit_text(text, parse_mode="HTML", reply_markup=staff_manage_kb(role, members))
