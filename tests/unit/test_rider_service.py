import asyncio
from unittest.mock import AsyncMock

import pytest

from api.errors import AssignmentConflict
from api.rider_service import RiderService

pytestmark = pytest.mark.unit

ORDER_ID = "3f2b9c1e-6a1d-4d2e-9a7b-0c1d2e3f4a5b"
RIDER_ID = "rider-1"
OTHER_RIDER_ID = "rider-2"


@pytest.fixture
def client():
    client = AsyncMock()
    client.update.return_value = [{"id": ORDER_ID}]
    client.select.return_value = []
    return client


@pytest.fixture
def orders():
    orders = AsyncMock()
    orders.get_assignment.return_value = None
    return orders


@pytest.fixture
def service(client, orders):
    return RiderService(client, orders)


def test_accept_claims_and_creates_assignment(service, client):
    asyncio.run(service.accept_order(ORDER_ID, RIDER_ID))

    table, payload, params = client.update.call_args_list[0].args
    assert table == "orders"
    assert payload == {"assigned_delivery_id": RIDER_ID}
    assert params == {"id": f"eq.{ORDER_ID}", "assigned_delivery_id": "is.null"}

    table, payload = client.insert.call_args.args
    assert table == "delivery_assignments"
    assert payload["rider_id"] == RIDER_ID
    assert payload["status"] == "Assigned"


def test_accept_lost_race_raises_conflict(service, client, orders, make_order):
    client.update.return_value = []
    orders.get_order_by_id.return_value = make_order(status="ready_for_pickup", assigned_delivery_id=OTHER_RIDER_ID)

    with pytest.raises(AssignmentConflict):
        asyncio.run(service.accept_order(ORDER_ID, RIDER_ID))
    client.insert.assert_not_called()


def test_accept_again_by_same_rider_is_allowed(service, client, orders, make_order, make_assignment):
    client.update.return_value = []
    orders.get_order_by_id.return_value = make_order(status="ready_for_pickup", assigned_delivery_id=RIDER_ID)
    orders.get_assignment.return_value = make_assignment(rider_id=RIDER_ID, order_id=ORDER_ID)

    asyncio.run(service.accept_order(ORDER_ID, RIDER_ID))

    table, payload, _ = client.update.call_args_list[-1].args
    assert table == "delivery_assignments"
    assert payload["rider_id"] == RIDER_ID
    client.insert.assert_not_called()


def test_accept_blocked_by_other_riders_assignment(service, orders, make_assignment):
    orders.get_assignment.return_value = make_assignment(rider_id=OTHER_RIDER_ID, order_id=ORDER_ID)
    with pytest.raises(AssignmentConflict):
        asyncio.run(service.accept_order(ORDER_ID, RIDER_ID))


def test_pick_up_updates_assignment_and_order(service, client):
    asyncio.run(service.mark_order_picked_up(ORDER_ID, RIDER_ID))

    (a_table, a_payload, a_params), (o_table, o_payload, _) = (c.args for c in client.update.call_args_list)
    assert a_table == "delivery_assignments"
    assert a_payload["status"] == "Picked Up"
    assert a_params == {"order_id": f"eq.{ORDER_ID}", "rider_id": f"eq.{RIDER_ID}"}
    assert o_table == "orders"
    assert o_payload["status"] == "out_for_delivery"


def test_rider_orders_skip_missing_orders(service, client, make_order_record):
    client.select.return_value = [
        {"id": "a-1", "order_id": ORDER_ID, "rider_id": RIDER_ID, "status": "Picked Up",
         "order": make_order_record(status="out_for_delivery")},
        {"id": "a-2", "order_id": "gone", "rider_id": RIDER_ID, "status": "Assigned", "order": None},
    ]
    result = asyncio.run(service.get_rider_orders(RIDER_ID))
    assert len(result) == 1
    assert result[0].order.status == "out_for_delivery"
    assert result[0].assignment.status == "Picked Up"
    assert client.select.call_args.args[1]["rider_id"] == f"eq.{RIDER_ID}"
