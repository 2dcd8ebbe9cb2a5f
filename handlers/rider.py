from typing import Optional

from aiogram import Router, F, Bot, html
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery

from api.errors import AssignmentConflict, BackendError, OrderNotFound
from api.order_service import OrderService
from api.realtime import RealtimeHub
from api.rider_service import RiderService
from database.managers.user_link_manager import UserLinkManager
from handlers.screens import action_key, show, stop_watching, watch_order
from keyboards.common import error_kb, not_found_kb, orders_list_kb
from keyboards.rider import (
    AVAILABLE,
    available_orders_kb,
    back_to_list_cb,
    capture_cancel_kb,
    cod_confirm_kb,
    proof_source_kb,
    rider_order_detail_kb,
)
from utils.decorators import handle_telegram_error, rider_only
from utils.formatting import format_money
from utils.locks import ActionGuard, ActionInProgress
from utils.logger import get_logger
from utils.notifications import customer_message, notify_customer, notify_order_delivered
from utils.order_actions import ActionKind, ViewerContext, resolve_actions
from utils.proof_capture import (
    CaptureFlowBusy, CaptureIntent, CaptureSource, CaptureState, FlowRegistry, ProofCaptureFlow,
)
from utils.save_image import ext_from_mime_or_name, is_image, proof_local_path
from utils.secrets import get_rider_ids
from utils.statuses import Role
from utils.tabs import count_orders_by_tab, tabs_for_role
from utils.views import (
    LOADING_TEXT, NOT_FOUND_TEXT, available_orders_text, error_text, order_detail_text, orders_list_text,
)

log = get_logger("[Bot.Rider]")

rider_router = Router()

NOT_LINKED = "Link your rider account first: send /start and tap «🔗 Link my account»."
BUSY_TEXT = "Another action is in progress."
STALE_TEXT = "This action is no longer available."

SOURCES = {"c": CaptureSource.CAMERA, "g": CaptureSource.GALLERY}

# Customer message sent after each rider action
ACTION_NOTES = {
    ActionKind.ACCEPT_ORDER: "accepted",
    ActionKind.MARK_PICKED_UP: "picked_up",
    ActionKind.VERIFY_COD_PAYMENT: "cod_verified",
}


class ProofCapture(StatesGroup):
    waiting_photo = State()


async def _rider_id(call: CallbackQuery, user_link_manager: UserLinkManager) -> Optional[str]:
    rider_id = await user_link_manager.get_profile_id(call.from_user.id)
    if not rider_id:
        await call.answer(NOT_LINKED, show_alert=True)
    return rider_id


def _parse_action_cb(data: str) -> tuple[str, str, str]:
    """'<prefix>:<kind>:<order_id>:<tab token>' -> (kind, order_id, tab token)."""
    _, kind, order_id, tab_token = data.split(":")
    return kind, order_id, tab_token


# --- 1. AVAILABLE ORDERS ---

@rider_router.callback_query(F.data.startswith("rd-avail:"))
@rider_only
async def available_orders(call: CallbackQuery, order_service: OrderService, realtime_hub: RealtimeHub):
    try:
        page = int(call.data.split(":")[1])
    except (ValueError, IndexError):
        page = 1
    await stop_watching(realtime_hub, call.message.chat.id)

    try:
        orders = await order_service.get_available_orders()
    except BackendError as e:
        await call.message.edit_text(error_text(e.message), parse_mode="HTML",
                                     reply_markup=error_kb(f"rd-avail:{page}", "back-main"))
        await call.answer()
        return

    try:
        await call.message.edit_text(available_orders_text(orders), parse_mode="HTML",
                                     reply_markup=available_orders_kb(orders, page))
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


# --- 2. MY DELIVERIES ---

@rider_router.callback_query(F.data.startswith("rd-orders:"))
@rider_only
async def my_deliveries(call: CallbackQuery, rider_service: RiderService, user_link_manager: UserLinkManager,
                        realtime_hub: RealtimeHub):
    try:
        _, tab_str, page_str = call.data.split(":")
        tab_index, page = int(tab_str), int(page_str)
    except ValueError:
        tab_index, page = 0, 1

    rider_id = await _rider_id(call, user_link_manager)
    if not rider_id:
        return
    await stop_watching(realtime_hub, call.message.chat.id)

    tabs = tabs_for_role(Role.RIDER)
    tab_index = tab_index if 0 <= tab_index < len(tabs) else 0
    tab = tabs[tab_index]

    try:
        rider_orders = await rider_service.get_rider_orders(rider_id)
    except BackendError as e:
        await call.message.edit_text(error_text(e.message), parse_mode="HTML",
                                     reply_markup=error_kb(f"rd-orders:{tab_index}:{page}", "back-main"))
        await call.answer()
        return

    # Assignments are few per rider, tabs are filtered here
    all_orders = [ro.order for ro in rider_orders]
    counts = count_orders_by_tab(all_orders, Role.RIDER)
    orders = [o for o in all_orders if tab.matches(o.status)]

    try:
        await call.message.edit_text(
            orders_list_text(orders, Role.RIDER, tab, counts),
            parse_mode="HTML",
            reply_markup=orders_list_kb(
                orders, Role.RIDER, tabs, tab_index,
                list_prefix="rd-orders", detail_prefix="rd-order", back_cb="back-main",
                page=page, counts=counts,
            ),
        )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


# --- 3. ORDER DETAIL ---

async def render_rider_order(bot: Bot, chat_id: int, message_id: int, order_service: OrderService,
                             rider_service: RiderService, action_guard: ActionGuard,
                             order_id: str, tab_token: str, rider_id: str) -> bool:
    back_cb = back_to_list_cb(tab_token)
    try:
        order = await order_service.get_order_by_id(order_id)
        assignment = await rider_service.get_assignment(order_id)
    except OrderNotFound:
        await show(bot, chat_id, message_id, NOT_FOUND_TEXT, not_found_kb(back_cb))
        return False
    except BackendError as e:
        await show(bot, chat_id, message_id, error_text(e.message),
                   error_kb(f"rd-order:{order_id}:{tab_token}", back_cb))
        return False

    ctx = ViewerContext(Role.RIDER, rider_id, busy=action_guard.is_busy(action_key(chat_id, order_id)))
    resolution = resolve_actions(order, ctx, assignment)
    await show(bot, chat_id, message_id, order_detail_text(order, Role.RIDER, resolution, assignment),
               rider_order_detail_kb(order.id, resolution, tab_token))
    return True


def _renderer(bot: Bot, chat_id: int, message_id: int, order_service: OrderService, rider_service: RiderService,
              action_guard: ActionGuard, order_id: str, tab_token: str, rider_id: str):
    async def rerender():
        await render_rider_order(bot, chat_id, message_id, order_service, rider_service, action_guard,
                                 order_id, tab_token, rider_id)

    return rerender


@rider_router.callback_query(F.data.startswith("rd-order:"))
@rider_only
async def rider_order_detail(call: CallbackQuery, bot: Bot, state: FSMContext, order_service: OrderService,
                             rider_service: RiderService, user_link_manager: UserLinkManager,
                             realtime_hub: RealtimeHub, action_guard: ActionGuard, capture_flows: FlowRegistry):
    try:
        _, order_id, tab_token = call.data.split(":")
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return

    rider_id = await _rider_id(call, user_link_manager)
    if not rider_id:
        return
    chat_id, message_id = call.message.chat.id, call.message.message_id
    if await state.get_state() == ProofCapture.waiting_photo.state:
        await state.clear()
    # Leaving the photo prompt abandons a capture that has not started uploading
    capture_flows.discard(action_key(chat_id, order_id))

    rerender = _renderer(bot, chat_id, message_id, order_service, rider_service, action_guard,
                         order_id, tab_token, rider_id)
    try:
        found = await render_rider_order(bot, chat_id, message_id, order_service, rider_service, action_guard,
                                         order_id, tab_token, rider_id)
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)
        return

    if found:
        await watch_order(realtime_hub, chat_id, order_id, rerender)


# --- 4. ACTIONS ---

async def _current_action(order_service: OrderService, rider_service: RiderService, order_id: str,
                          rider_id: str, kind: ActionKind):
    """Re-resolves against a fresh snapshot; a stale button must not act."""
    order = await order_service.get_order_by_id(order_id)
    assignment = await rider_service.get_assignment(order_id)
    action = resolve_actions(order, ViewerContext(Role.RIDER, rider_id), assignment).find(kind)
    if action is None or not action.enabled:
        return order, None
    return order, action


async def _run_rider_action(call: CallbackQuery, bot: Bot, order_service: OrderService,
                            rider_service: RiderService, user_link_manager: UserLinkManager,
                            action_guard: ActionGuard, capture_flows: FlowRegistry,
                            kind: ActionKind, order_id: str, tab_token: str, rider_id: str):
    chat_id, message_id = call.message.chat.id, call.message.message_id
    key = action_key(chat_id, order_id)
    flow = capture_flows.get(key)
    if flow is not None and flow.is_uploading:
        await call.answer(BUSY_TEXT, show_alert=True)
        return

    try:
        async with action_guard.hold(key):
            order, action = await _current_action(order_service, rider_service, order_id, rider_id, kind)
            if action is None:
                await call.answer(STALE_TEXT, show_alert=True)
                return

            if kind == ActionKind.ACCEPT_ORDER:
                await rider_service.accept_order(order_id, rider_id)
                done = "Order accepted. Pick it up at the store."
            elif kind == ActionKind.MARK_PICKED_UP:
                await rider_service.mark_order_picked_up(order_id, rider_id)
                done = "Marked as picked up."
            elif kind == ActionKind.VERIFY_COD_PAYMENT:
                result = await order_service.verify_cod_payment(order_id, rider_id)
                if not result.success:
                    await call.answer(result.message, show_alert=True)
                    return
                done = result.message
            else:
                result = await order_service.mark_order_delivered(order_id, rider_id)
                if not result.success:
                    await call.answer(result.message, show_alert=True)
                    return
                done = result.message
    except ActionInProgress:
        await call.answer(BUSY_TEXT, show_alert=True)
        return
    except AssignmentConflict as e:
        log.info(f"Rider {rider_id} lost order {order_id}: {e.message}")
        await call.answer(e.message, show_alert=True)
        done = None
    except BackendError as e:
        log.error(f"Rider action {kind.value} on order {order_id} failed: {e.message}")
        await call.answer(e.message, show_alert=True)
        return

    if done is not None and kind == ActionKind.MARK_DELIVERED:
        await notify_order_delivered(bot, user_link_manager, order)
    elif done is not None:
        await notify_customer(bot, user_link_manager, order, customer_message(ACTION_NOTES[kind], order))
    try:
        await render_rider_order(bot, chat_id, message_id, order_service, rider_service, action_guard,
                                 order_id, tab_token, rider_id)
        if done is not None:
            await call.answer(done, show_alert=True)
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@rider_router.callback_query(F.data.startswith("rd-act:"))
@rider_only
async def rider_order_action(call: CallbackQuery, bot: Bot, order_service: OrderService,
                             rider_service: RiderService, user_link_manager: UserLinkManager,
                             action_guard: ActionGuard, capture_flows: FlowRegistry):
    try:
        kind_str, order_id, tab_token = _parse_action_cb(call.data)
        kind = ActionKind(kind_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return

    rider_id = await _rider_id(call, user_link_manager)
    if not rider_id:
        return

    if kind in (ActionKind.ACCEPT_ORDER, ActionKind.MARK_PICKED_UP):
        await _run_rider_action(call, bot, order_service, rider_service, user_link_manager, action_guard,
                                capture_flows, kind, order_id, tab_token, rider_id)
        return

    try:
        order, action = await _current_action(order_service, rider_service, order_id, rider_id, kind)
    except BackendError as e:
        await call.answer(e.message, show_alert=True)
        return
    if action is None:
        await call.answer(STALE_TEXT, show_alert=True)
        return

    if kind == ActionKind.MARK_DELIVERED and not action.needs_capture:
        # Proof is already on file, reuse it
        await _run_rider_action(call, bot, order_service, rider_service, user_link_manager, action_guard,
                                capture_flows, kind, order_id, tab_token, rider_id)
        return

    try:
        if kind == ActionKind.VERIFY_COD_PAYMENT:
            await call.message.edit_text(
                f"💵 Did you receive <b>{format_money(order.total_amount)}</b> in cash "
                f"for order <b>#{html.quote(order.order_number)}</b>?",
                parse_mode="HTML",
                reply_markup=cod_confirm_kb(order_id, tab_token),
            )
        else:
            what = "update the proof photo" if kind == ActionKind.UPLOAD_PROOF else "complete the delivery"
            await call.message.edit_text(
                f"📸 A photo is needed to {what} of order <b>#{html.quote(order.order_number)}</b>.\n\nChoose a source:",
                parse_mode="HTML",
                reply_markup=proof_source_kb(order_id, kind.value, tab_token),
            )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@rider_router.callback_query(F.data.startswith("rd-yes:"))
@rider_only
async def rider_cod_yes(call: CallbackQuery, bot: Bot, order_service: OrderService, rider_service: RiderService,
                        user_link_manager: UserLinkManager, action_guard: ActionGuard,
                        capture_flows: FlowRegistry):
    try:
        kind_str, order_id, tab_token = _parse_action_cb(call.data)
        kind = ActionKind(kind_str)
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return
    if kind != ActionKind.VERIFY_COD_PAYMENT:
        await call.answer("Bad request.", show_alert=True)
        return

    rider_id = await _rider_id(call, user_link_manager)
    if not rider_id:
        return
    await _run_rider_action(call, bot, order_service, rider_service, user_link_manager, action_guard,
                            capture_flows, kind, order_id, tab_token, rider_id)


# --- 5. PROOF OF DELIVERY ---

@rider_router.callback_query(F.data.startswith("rd-src:"))
@rider_only
async def proof_source_chosen(call: CallbackQuery, bot: Bot, state: FSMContext, order_service: OrderService,
                              rider_service: RiderService, user_link_manager: UserLinkManager,
                              action_guard: ActionGuard, capture_flows: FlowRegistry, realtime_hub: RealtimeHub):
    try:
        _, source_code, intent_str, order_id, tab_token = call.data.split(":")
        source = SOURCES[source_code]
        intent = CaptureIntent(intent_str)
    except (ValueError, KeyError):
        await call.answer("Bad request.", show_alert=True)
        return

    rider_id = await _rider_id(call, user_link_manager)
    if not rider_id:
        return

    chat_id, message_id = call.message.chat.id, call.message.message_id
    key = action_key(chat_id, order_id)
    if action_guard.is_busy(key):
        await call.answer(BUSY_TEXT, show_alert=True)
        return

    flow = ProofCaptureFlow(
        order_id, rider_id, intent, order_service,
        on_refresh=_renderer(bot, chat_id, message_id, order_service, rider_service, action_guard,
                             order_id, tab_token, rider_id),
    )
    try:
        capture_flows.start(key, flow, source)
    except CaptureFlowBusy:
        await call.answer(BUSY_TEXT, show_alert=True)
        return

    denied = flow.permission_resolved(call.from_user.id in get_rider_ids())
    if denied is not None:
        capture_flows.discard(key)
        await call.answer(denied.message, show_alert=True)
        return

    # Live updates would overwrite the photo prompt
    await stop_watching(realtime_hub, chat_id)
    await state.set_state(ProofCapture.waiting_photo)
    await state.update_data(proof_order_id=order_id, proof_tab=tab_token, proof_message_id=message_id)

    hint = "Take a photo of the delivered order" if source == CaptureSource.CAMERA \
        else "Choose a photo of the delivered order"
    try:
        await call.message.edit_text(
            f"📸 {hint} and send it here.\n\n<i>Send it as a photo or as an image file.</i>",
            parse_mode="HTML",
            reply_markup=capture_cancel_kb(order_id, tab_token),
        )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call, state=state)


@rider_router.callback_query(F.data.startswith("rd-cap-x:"))
@rider_only
async def proof_capture_cancel(call: CallbackQuery, bot: Bot, state: FSMContext, order_service: OrderService,
                               rider_service: RiderService, user_link_manager: UserLinkManager,
                               action_guard: ActionGuard, capture_flows: FlowRegistry):
    try:
        _, order_id, tab_token = call.data.split(":")
    except ValueError:
        await call.answer("Bad request.", show_alert=True)
        return

    key = action_key(call.message.chat.id, order_id)
    flow = capture_flows.get(key)
    if flow is not None and flow.is_uploading:
        await call.answer("Upload in progress, please wait.", show_alert=True)
        return
    if flow is not None:
        flow.cancel()
        capture_flows.discard(key)
    await state.clear()

    rider_id = await _rider_id(call, user_link_manager)
    if not rider_id:
        return
    try:
        await render_rider_order(bot, call.message.chat.id, call.message.message_id, order_service,
                                 rider_service, action_guard, order_id, tab_token, rider_id)
        await call.answer()
    except TelegramBadRequest as e:
        log.error(e)
        await handle_telegram_error(e, call=call)


@rider_router.message(ProofCapture.waiting_photo, F.photo | F.document)
@rider_only
async def proof_photo_received(msg: Message, bot: Bot, state: FSMContext, order_service: OrderService,
                               rider_service: RiderService, user_link_manager: UserLinkManager,
                               action_guard: ActionGuard, capture_flows: FlowRegistry):
    data = await state.get_data()
    order_id = data.get("proof_order_id")
    tab_token = data.get("proof_tab", AVAILABLE)
    message_id = data.get("proof_message_id")

    key = action_key(msg.chat.id, order_id)
    flow = capture_flows.get(key)
    if flow is None:
        await state.clear()
        await msg.answer("This photo request has expired. Open the order and try again.")
        return

    if msg.photo:
        file, ext = msg.photo[-1], ".jpg"
    else:
        doc = msg.document
        if not is_image(doc.mime_type, doc.file_name):
            await msg.answer("Please send an image (JPG, PNG, WEBP or HEIC).")
            return
        file, ext = doc, ext_from_mime_or_name(doc.mime_type, doc.file_name)

    path = proof_local_path(order_id, ext)
    try:
        await bot.download(file, destination=path)
    except Exception as e:
        log.exception(f"Could not download proof photo for order {order_id}: {e}")
        await msg.answer("Couldn't get the photo from Telegram. Send it again.")
        return

    if message_id and flow.state == CaptureState.CAPTURING:
        try:
            await show(bot, msg.chat.id, message_id, f"{LOADING_TEXT}\n\n<i>Uploading the proof photo.</i>")
        except TelegramBadRequest as e:
            log.warning(f"Could not show upload progress for order {order_id}: {e}")

    try:
        outcome = await flow.image_captured(str(path))
    except CaptureFlowBusy:
        await msg.answer("The previous photo is still uploading, please wait.")
        return
    finally:
        path.unlink(missing_ok=True)

    await state.clear()
    capture_flows.discard(key)

    icon = "✅" if outcome.ok else "⚠️"
    await msg.answer(f"{icon} <b>{outcome.title}</b>\n\n{html.quote(outcome.message or '')}", parse_mode="HTML")

    if outcome.ok and flow.intent == CaptureIntent.MARK_DELIVERED:
        try:
            order = await order_service.get_order_by_id(order_id)
            await notify_order_delivered(bot, user_link_manager, order)
        except BackendError as e:
            log.error(f"Could not notify customer of order {order_id}: {e.message}")

    if not outcome.ok and message_id:
        # Successful uploads were already re-rendered by the flow
        try:
            await render_rider_order(bot, msg.chat.id, message_id, order_service, rider_service, action_guard,
                                     order_id, tab_token, flow.rider_id)
        except TelegramBadRequest as e:
            log.warning(f"Could not restore order {order_id} screen: {e}")


@rider_router.message(ProofCapture.waiting_photo)
@rider_only
async def proof_wrong_input(msg: Message):
    await msg.answer("Send a photo of the delivered order, or tap «❌ Cancel».")
