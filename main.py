import sys
import signal
import asyncio
import logging
from contextlib import suppress

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from api.order_service import OrderService
from api.profile_service import ProfileService
from api.realtime import RealtimeHub
from api.rider_service import RiderService
from api.supabase_client import SupabaseClient
from database.async_db import AsyncDatabase
from database.managers.user_link_manager import UserLinkManager
from utils.locks import ActionGuard
from utils.logger import get_logger, setup_logging
from utils.config import (
    BOT_TOKEN, DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD,
    DB_MIN_POOL_SIZE, DB_MAX_POOL_SIZE, SUPABASE_URL, SUPABASE_KEY, SUPABASE_PROOF_BUCKET,
    REALTIME_ENABLED, TIMEZONE, AVAILABLE_ORDERS_POLL_MINUTES, REALTIME_IDLE_MINUTES,
)
from utils.proof_capture import FlowRegistry
from utils.scheduler_jobs import AnnouncedOrders, announce_available_orders, prune_realtime_subscriptions

from middleware.service_middleware import ServiceMiddleware
from handlers import register_handlers

setup_logging(level=logging.DEBUG, log_to_file=True)
log = get_logger("[Bot]")


async def shutdown(bot: Bot, dp: Dispatcher):
    log.info("[Bot] Shutting down bot and dispatcher")

    scheduler = dp.get("scheduler")
    if scheduler and scheduler.running:
        scheduler.shutdown()
        log.debug("[Scheduler] Scheduler stopped [✓]")

    for mw in dp.update.middleware._middlewares:
        if isinstance(mw, ServiceMiddleware):
            with suppress(Exception):
                await mw.realtime_hub.close()
                log.debug("[Bot] Realtime subscriptions closed [✓]")
            with suppress(Exception):
                await mw.order_service.client.close()
                log.debug("[Bot] Backend client session closed [✓]")
            with suppress(Exception):
                await mw.db.close()
                log.debug("[Bot] Database pool closed [✓]")

    with suppress(Exception):
        await dp.storage.close()
        log.debug("[Bot] Dispatcher storage closed [✓]")

    with suppress(Exception):
        await bot.session.close()
        log.debug("[Bot] Bot session closed [✓]")

    log.info("[Bot] Shutdown complete [✓]")
    log.info("-" * 80)


async def main():
    log.info("[Bot] Starting main process")
    bot = Bot(token=BOT_TOKEN)
    dp = Dispatcher()

    supabase = SupabaseClient(url=SUPABASE_URL, key=SUPABASE_KEY)
    order_service = OrderService(supabase, proof_bucket=SUPABASE_PROOF_BUCKET)
    rider_service = RiderService(supabase, order_service)
    profile_service = ProfileService(supabase)
    realtime_hub = RealtimeHub(SUPABASE_URL, SUPABASE_KEY, enabled=REALTIME_ENABLED)
    action_guard = ActionGuard()
    capture_flows = FlowRegistry()

    db = AsyncDatabase(
        db_name=DB_NAME, user=DB_USER, password=DB_PASSWORD, host=DB_HOST, port=DB_PORT,
        min_size=DB_MIN_POOL_SIZE, max_size=DB_MAX_POOL_SIZE,
    )
    await db.connect()
    log.info("[Bot] Database connection established [✓]")

    user_link_manager = UserLinkManager(db)

    scheduler = AsyncIOScheduler(timezone=TIMEZONE)
    scheduler.add_job(
        announce_available_orders, trigger="interval", minutes=AVAILABLE_ORDERS_POLL_MINUTES,
        args=[bot, order_service, AnnouncedOrders()]
    )
    scheduler.add_job(
        prune_realtime_subscriptions, trigger="interval", minutes=10,
        args=[realtime_hub, capture_flows, REALTIME_IDLE_MINUTES]
    )

    dp.update.middleware(
        ServiceMiddleware(
            db=db, user_link_manager=user_link_manager, order_service=order_service,
            rider_service=rider_service, profile_service=profile_service, realtime_hub=realtime_hub,
            action_guard=action_guard, capture_flows=capture_flows, bot=bot,
        )
    )
    log.info("[Bot] Middleware configured [✓]")

    register_handlers(dp)
    log.info("[Bot] Handlers registered [✓]")

    dp["scheduler"] = scheduler

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: loop.create_task(shutdown(bot, dp)))

    try:
        log.info("[Bot] Bot is running. Press Ctrl+C to stop")
        scheduler.start()
        log.info("[Scheduler] Scheduler started [✓]")
        await dp.start_polling(bot)
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        log.warning("[Bot] Shutdown signal received")
    finally:
        await shutdown(bot, dp)


if __name__ == "__main__":
    log.info("-" * 80)
    log.info("[Bot] Starting application")
    asyncio.run(main())
