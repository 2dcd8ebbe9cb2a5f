from functools import wraps
import logging

from aiogram import types
from aiogram.fsm.context import FSMContext
from aiogram.exceptions import TelegramBadRequest

from keyboards.common import get_main_inline_keyboard
from utils.secrets import get_admin_ids, get_rider_ids, get_role

log = logging.getLogger("[Bot.Decorator]")


async def handle_telegram_error(
        e: TelegramBadRequest,
        message: types.Message = None,
        call: types.CallbackQuery = None,
        state: FSMContext = None
) -> bool:
    error_text = str(e).lower()

    if "message is not modified" in error_text:
        log.debug("Message is not modified")
        if call:
            await call.answer()
        return True

    if (
            "message to delete not found" in error_text
            or "message can't be deleted" in error_text
            or "message to edit not found" in error_text
            or "message can't be edited" in error_text
    ):
        if state:
            await state.clear()
            log.debug("FSM state cleared after a Telegram error")

        user = call.from_user if call else message.from_user if message else None
        role = get_role(user.id) if user else "customer"

        target = call.message if call else message if message else None
        if target:
            await target.answer(
                text="Couldn't update the previous message. Choose an action:",
                reply_markup=get_main_inline_keyboard(role)
            )
            log.info(f"Telegram error handled for user {user.id if user else 'unknown'}")
        return True

    log.warning(f"[UNHANDLED TelegramBadRequest] {e}")
    return False


def _get_ctx(args, kwargs):
    message = next((a for a in args if isinstance(a, types.Message)), None)
    call = next((a for a in args if isinstance(a, types.CallbackQuery)), None)
    state = next((a for a in args if isinstance(a, FSMContext)), None) \
            or next((v for v in kwargs.values() if isinstance(v, FSMContext)), None)
    return message, call, state


async def _deny(message, call, state, text: str):
    if state:
        await state.clear()
    if call:
        await call.answer(text, show_alert=True)
        return
    if message:
        user_id = message.from_user.id
        await message.answer(text, reply_markup=get_main_inline_keyboard(get_role(user_id)))


def _role_only(get_ids, role_name: str):
    def decorator(handler):
        @wraps(handler)
        async def wrapper(*args, **kwargs):
            message, call, state = _get_ctx(args, kwargs)
            user_id = (message.from_user.id if message else call.from_user.id if call else None)

            if user_id not in get_ids():
                log.warning(f"User {user_id} tried to open {handler.__name__} without {role_name} rights")
                await _deny(message, call, state, "Sorry, you don't have access to this action.")
                return
            return await handler(*args, **kwargs)

        return wrapper

    return decorator


admin_only = _role_only(get_admin_ids, "admin")
rider_only = _role_only(get_rider_ids, "rider")
