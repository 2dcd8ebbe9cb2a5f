# utils/scheduler_jobs.py
from aiogram import Bot

from api.errors import BackendError
from api.order_service import OrderService
from api.realtime import RealtimeHub
from utils.logger import get_logger
from utils.notifications import announce_order_to_riders
from utils.proof_capture import FlowRegistry

log = get_logger("[SchedulerJobs]")


class AnnouncedOrders:
    """Ids already announced to riders, so every ready order is announced once."""

    def __init__(self):
        self.ids: set[str] = set()

    def new(self, order_ids: list[str]) -> list[str]:
        fresh = [oid for oid in order_ids if oid not in self.ids]
        # Orders that left the available list will not come back under the same id
        self.ids = set(order_ids)
        return fresh


async def announce_available_orders(bot: Bot, order_service: OrderService, announced: AnnouncedOrders):
    """Polls orders waiting for a rider and announces the new ones."""
    log.debug("Checking for orders waiting for a rider...")
    try:
        available = await order_service.get_available_orders()
    except BackendError as e:
        log.error(f"Could not load available orders: {e.message}")
        return

    by_id = {d.order.id: d for d in available}
    fresh = announced.new(list(by_id))
    if not fresh:
        log.debug("No new orders to announce.")
        return

    for order_id in fresh:
        sent = await announce_order_to_riders(bot, by_id[order_id])
        log.info(f"Order {order_id} announced to {sent} rider(s).")


async def prune_realtime_subscriptions(hub: RealtimeHub, flows: FlowRegistry, idle_minutes: int):
    """Closes subscriptions and capture flows of screens nobody looks at anymore."""
    max_idle = idle_minutes * 60
    closed = await hub.prune(max_idle)
    dropped = flows.prune(max_idle)
    if closed or dropped:
        log.info(f"Pruned {closed} realtime subscription(s) and {dropped} capture flow(s).")
