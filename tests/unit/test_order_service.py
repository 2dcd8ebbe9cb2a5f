import asyncio
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from api.errors import BackendError, OrderNotFound
from api.order_service import OrderFilters, OrderService

pytestmark = pytest.mark.unit

ORDER_ID = "3f2b9c1e-6a1d-4d2e-9a7b-0c1d2e3f4a5b"


@pytest.fixture
def client():
    client = AsyncMock()
    client.select.return_value = []
    client.update.return_value = [{"id": ORDER_ID}]
    client.insert.return_value = [{"id": "a-1"}]
    return client


@pytest.fixture
def service(client):
    return OrderService(client)


def _updates(client, table):
    return [c.args[1] for c in client.update.call_args_list if c.args[0] == table]


def test_filters_to_params():
    params = OrderFilters(
        status={"ready_for_pickup", "Pending"},
        date_from=datetime(2025, 3, 1),
        date_to=datetime(2025, 3, 31),
        search="1042",
    ).to_params()
    assert params["status"] == 'in.("pending","ready_for_pickup")'
    assert params["and"] == "(created_at.gte.2025-03-01T00:00:00,created_at.lte.2025-03-31T00:00:00)"
    assert params["order_number"] == "ilike.*1042*"
    assert OrderFilters().to_params() == {}


def test_get_order_by_id_propagates_not_found(service, client):
    client.select_single.side_effect = OrderNotFound(ORDER_ID)
    with pytest.raises(OrderNotFound):
        asyncio.run(service.get_order_by_id(ORDER_ID))


def test_user_orders_are_scoped_to_the_profile(service, client, make_order_record):
    client.select.return_value = [make_order_record()]
    orders = asyncio.run(service.get_user_orders("profile-1", OrderFilters(status={"pending"})))
    params = client.select.call_args.args[1]
    assert params["user_id"] == "eq.profile-1"
    assert params["status"] == 'in.("pending")'
    assert orders[0].order_number == "KO-1042"


def test_update_status_writes_matching_timestamp(service, client):
    asyncio.run(service.update_order_status(ORDER_ID, "confirmed", "admin"))
    payload = _updates(client, "orders")[0]
    assert payload["status"] == "confirmed"
    assert "confirmed_at" in payload


def test_verify_payment_moves_order_to_preparing(service, client):
    asyncio.run(service.verify_payment(ORDER_ID, "admin-profile"))
    payload = _updates(client, "orders")[0]
    assert payload["payment_status"] == "verified"
    assert payload["status"] == "preparing"
    assert payload["payment_verified_by"] == "admin-profile"


def test_cod_check_rejects_non_cod(service, client, make_order_record):
    client.select_single.return_value = make_order_record(status="out_for_delivery", payment_method="gcash")
    result = asyncio.run(service.verify_cod_payment(ORDER_ID, "rider-1"))
    assert not result.success
    assert result.message == "This order is not a COD payment"
    client.update.assert_not_called()


def test_cod_check_rejects_already_verified(service, client, make_order_record):
    client.select_single.return_value = make_order_record(status="out_for_delivery", payment_status="verified")
    result = asyncio.run(service.verify_cod_payment(ORDER_ID, "rider-1"))
    assert result.message == "Payment has already been verified"


def test_cod_check_creates_picked_up_assignment(service, client, make_order_record):
    client.select_single.return_value = make_order_record(status="out_for_delivery")
    result = asyncio.run(service.verify_cod_payment(ORDER_ID, "rider-1"))

    assert result.success
    table, payload = client.insert.call_args.args
    assert table == "delivery_assignments"
    assert payload["status"] == "Picked Up"
    assert payload["rider_id"] == "rider-1"
    assert _updates(client, "orders")[0]["payment_status"] == "verified"


def test_cod_check_reports_backend_message(service, client, make_order_record):
    client.select_single.return_value = make_order_record(status="out_for_delivery")
    client.update.side_effect = BackendError(500, "permission denied for table orders")
    result = asyncio.run(service.verify_cod_payment(ORDER_ID, "rider-1"))
    assert not result.success
    assert result.message == "permission denied for table orders"


def test_delivery_with_photo_keeps_earlier_timestamps(service, client, tmp_path):
    photo = tmp_path / "proof.png"
    photo.write_bytes(b"\x89PNG")
    client.select.return_value = [{"id": "a-1", "rider_id": "rider-1", "assigned_at": "T0", "picked_up_at": "T1"}]
    client.upload_file.return_value = "https://cdn/proof.png"

    result = asyncio.run(service.mark_order_delivered(ORDER_ID, "rider-1", str(photo)))

    assert result.success and result.proof_uploaded
    assert result.message == "Order marked as delivered with proof photo!"
    bucket, path, content, content_type = client.upload_file.call_args.args
    assert bucket == "deliveries"
    assert path.startswith(f"orders/{ORDER_ID}/deliveries/") and path.endswith(".png")
    assert content == b"\x89PNG"
    assert content_type == "image/png"

    assignment = _updates(client, "delivery_assignments")[0]
    assert assignment["status"] == "Delivered"
    assert assignment["assigned_at"] == "T0"
    assert assignment["picked_up_at"] == "T1"
    assert assignment["delivered_at"] != "T1"

    order = _updates(client, "orders")[0]
    assert order["status"] == "delivered"
    assert order["proof_of_delivery_url"] == "https://cdn/proof.png"


def test_delivery_continues_when_photo_is_unreadable(service, client, tmp_path):
    result = asyncio.run(service.mark_order_delivered(ORDER_ID, "rider-1", str(tmp_path / "missing.jpg")))
    assert result.success
    assert not result.proof_uploaded
    assert result.message == "Order marked as delivered!"
    assert "proof_of_delivery_url" not in _updates(client, "orders")[0]


def test_delivery_reuses_existing_proof_without_image(service, client):
    result = asyncio.run(service.mark_order_delivered(ORDER_ID, "rider-1"))
    assert result.success
    client.upload_file.assert_not_called()


def test_delivery_failure_on_order_row_is_reported(service, client):
    async def update(table, payload, params):
        if table == "orders":
            raise BackendError(409, "Order was cancelled")
        return [{"id": "a-1"}]

    client.update.side_effect = update
    result = asyncio.run(service.mark_order_delivered(ORDER_ID, "rider-1"))
    assert not result.success
    assert result.message == "Order was cancelled"


def test_proof_upload_failure_message(service, client, tmp_path):
    photo = tmp_path / "proof.jpg"
    photo.write_bytes(b"jpg")
    client.upload_file.side_effect = BackendError(413, "The object exceeded the maximum allowed size")
    result = asyncio.run(service.upload_delivery_proof(ORDER_ID, "rider-1", str(photo)))
    assert not result.success
    assert result.message == "The object exceeded the maximum allowed size"

    result = asyncio.run(service.upload_delivery_proof(ORDER_ID, "rider-1", str(tmp_path / "gone.jpg")))
    assert result.message == "Failed to upload delivery proof"


def test_assign_order_to_delivery(service, client):
    asyncio.run(service.assign_order_to_delivery(ORDER_ID, "rider-1"))
    payload = _updates(client, "orders")[0]
    assert payload["assigned_delivery_id"] == "rider-1"
    assert payload["status"] == "out_for_delivery"


def test_available_orders_query(service, client, make_order_record):
    client.select.return_value = [make_order_record(status="ready_for_pickup")]
    available = asyncio.run(service.get_available_orders())
    params = client.select.call_args.args[1]
    assert params["status"] == "eq.ready_for_pickup"
    assert params["assigned_delivery_id"] == "is.null"
    assert available[0].customer_name == "Juan Dela Cruz"


def test_order_stats(service, client):
    client.select.return_value = [
        {"status": "delivered", "total_amount": "500"},
        {"status": "Out for Delivery", "total_amount": "250.60"},
        {"status": "pending", "total_amount": None},
        {"status": "delivered", "total_amount": "300"},
    ]
    stats = asyncio.run(service.get_order_stats())
    assert stats.total_orders == 4
    assert stats.by_status == {"delivered": 2, "out_for_delivery": 1, "pending": 1}
    assert stats.total_revenue == Decimal("1050.60")
    assert stats.average_order_value == Decimal("262.65")
    assert stats.completion_rate == 50.0
