import uuid

import pytest

from database.models.order import DeliveryAssignment, Order

RIDER_ID = "rider-1"
OTHER_RIDER_ID = "rider-2"


def order_record(**overrides) -> dict:
    record = {
        "id": "3f2b9c1e-6a1d-4d2e-9a7b-0c1d2e3f4a5b",
        "order_number": "KO-1042",
        "status": "pending",
        "payment_method": "cod",
        "payment_status": "pending",
        "fulfillment_type": "delivery",
        "user_id": "profile-1",
        "subtotal": "450.00",
        "delivery_fee": "49.00",
        "total_amount": "499.00",
        "created_at": "2025-03-04T07:05:00+00:00",
        "items": [
            {
                "id": "item-1",
                "product_id": "p-1",
                "quantity": 1,
                "unit_price": "450.00",
                "product": {"name": "Hawaiian Pizza"},
                "customization_details": {
                    "pizza_size": "Large",
                    "pizza_crust": "Thin",
                    "toppings": ["Ham", "Pineapple", "Bacon", "Olives"],
                },
            }
        ],
        "delivery_address": {"label": "Home", "full_address": "12 Mabini St, Makati"},
        "user": {"full_name": "Juan Dela Cruz", "phone_number": "09171234567"},
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_order():
    def factory(**overrides) -> Order:
        return Order.from_record(order_record(**overrides))

    return factory


@pytest.fixture
def make_assignment():
    def factory(rider_id=RIDER_ID, status="Assigned", order_id="o-1") -> DeliveryAssignment:
        return DeliveryAssignment.from_record({
            "id": str(uuid.uuid4()),
            "order_id": order_id,
            "rider_id": rider_id,
            "status": status,
        })

    return factory


@pytest.fixture
def secrets_file(tmp_path, monkeypatch):
    path = tmp_path / "secrets.json"
    path.write_text('{"ADMIN_IDS": [100], "RIDER_IDS": [100, 200]}', encoding="utf-8")
    monkeypatch.setattr("utils.secrets.SECRETS_JSON_PATH", str(path))
    return path


@pytest.fixture
def make_order_record():
    return order_record
