import pytest

from utils.statuses import Role
from utils.views import order_detail_text

pytestmark = pytest.mark.unit

PLAIN_PIZZA = {
    "id": "i1",
    "product_name": "Pizza",
    "quantity": 1,
    "unit_price": "300.00",
    "special_instructions": "No onions <please>",
    "pizza_size": "Large",
}


def test_rider_sees_item_note_and_item_level_pizza_fields(make_order):
    text = order_detail_text(make_order(items=[PLAIN_PIZZA]), Role.RIDER)
    assert "• Pizza ×1 — ₱300.00" in text
    assert "<i>Details:</i> Size: Large" in text
    assert "<i>Note:</i> No onions &lt;please&gt;" in text


def test_customer_sees_compact_line_and_note(make_order):
    text = order_detail_text(make_order(items=[PLAIN_PIZZA]), Role.CUSTOMER)
    assert "<i>Size: Large</i>" in text
    assert "<i>Note:</i> No onions &lt;please&gt;" in text


def test_note_is_not_repeated_when_customization_carries_it(make_order):
    item = dict(PLAIN_PIZZA, special_instructions="Extra sauce",
                customization_details={"pizza_size": "Medium", "special_instructions": "Extra sauce"})
    text = order_detail_text(make_order(items=[item]), Role.ADMIN)
    assert text.count("Extra sauce") == 1
    assert "Size: Medium" in text


def test_unparseable_phone_is_escaped(make_order):
    order = make_order(user={"full_name": "Juan", "phone_number": "call <b>me"})
    text = order_detail_text(order, Role.ADMIN)
    assert "📞 call &lt;b&gt;me" in text
    assert "<b>me" not in text
