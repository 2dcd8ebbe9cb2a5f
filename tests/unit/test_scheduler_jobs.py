import asyncio
from unittest.mock import AsyncMock

import pytest

from api.errors import BackendError
from database.models.order import DeliveryOrder
from utils.scheduler_jobs import AnnouncedOrders, announce_available_orders

pytestmark = pytest.mark.unit


def test_announced_orders_reports_only_new_ids():
    announced = AnnouncedOrders()
    assert announced.new(["a", "b"]) == ["a", "b"]
    assert announced.new(["a", "b", "c"]) == ["c"]
    # "a" was taken by a rider and left the list
    assert announced.new(["b", "c"]) == []


def test_new_ready_orders_are_announced_once(monkeypatch, make_order_record):
    announce = AsyncMock(return_value=2)
    monkeypatch.setattr("utils.scheduler_jobs.announce_order_to_riders", announce)
    order_service = AsyncMock()
    order_service.get_available_orders.return_value = [
        DeliveryOrder.from_record(make_order_record(status="ready_for_pickup")),
    ]
    bot = AsyncMock()
    announced = AnnouncedOrders()

    asyncio.run(announce_available_orders(bot, order_service, announced))
    asyncio.run(announce_available_orders(bot, order_service, announced))

    announce.assert_awaited_once()
    assert announce.call_args.args[1].order.order_number == "KO-1042"


def test_backend_error_skips_the_run(monkeypatch):
    announce = AsyncMock()
    monkeypatch.setattr("utils.scheduler_jobs.announce_order_to_riders", announce)
    order_service = AsyncMock()
    order_service.get_available_orders.side_effect = BackendError(503, "Service unavailable")

    asyncio.run(announce_available_orders(AsyncMock(), order_service, AnnouncedOrders()))
    announce.assert_not_awaited()
