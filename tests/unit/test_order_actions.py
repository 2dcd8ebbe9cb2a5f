import pytest

from utils.order_actions import (
    BUSY_REASON, NOTHING, ActionKind, ViewerContext, resolve_actions,
)
from utils.statuses import OrderStatus, Role

pytestmark = pytest.mark.unit

RIDER = ViewerContext(Role.RIDER, "rider-1")
ADMIN = ViewerContext(Role.ADMIN)


# --- rider ---

def test_cod_pending_out_for_delivery_offers_only_cod_check(make_order):
    order = make_order(status="out_for_delivery", payment_method="cod", payment_status="pending")
    resolution = resolve_actions(order, RIDER)
    assert resolution.kinds == [ActionKind.VERIFY_COD_PAYMENT]


def test_verified_cod_without_proof_offers_upload_then_deliver(make_order):
    order = make_order(status="out_for_delivery", payment_method="cod", payment_status="verified")
    resolution = resolve_actions(order, RIDER)
    assert resolution.kinds == [ActionKind.UPLOAD_PROOF, ActionKind.MARK_DELIVERED]
    assert resolution.actions[0].label.startswith("Upload")
    assert resolution.find(ActionKind.MARK_DELIVERED).needs_capture is True


def test_existing_proof_is_reused_for_delivery(make_order):
    order = make_order(status="out_for_delivery", payment_status="verified",
                       proof_of_delivery_url="https://cdn/p.jpg")
    resolution = resolve_actions(order, RIDER)
    assert resolution.actions[0].label == "Update Proof"
    assert resolution.find(ActionKind.MARK_DELIVERED).needs_capture is False


@pytest.mark.parametrize("role", list(Role))
def test_delivered_has_no_actions(make_order, role):
    order = make_order(status="delivered", payment_method="gcash", payment_status="pending",
                       proof_of_payment_url="https://cdn/pay.jpg")
    resolution = resolve_actions(order, ViewerContext(role, "rider-1"))
    assert resolution.actions == []
    assert resolution.notice is not None


def test_assigned_rider_can_mark_picked_up(make_order, make_assignment):
    order = make_order(status="ready_for_pickup")
    resolution = resolve_actions(order, RIDER, make_assignment(rider_id="rider-1"))
    assert resolution.kinds == [ActionKind.MARK_PICKED_UP]


def test_assignment_without_status_counts_as_assigned(make_order, make_assignment):
    order = make_order(status="ready_for_pickup")
    resolution = resolve_actions(order, RIDER, make_assignment(rider_id="rider-1", status=None))
    assert resolution.kinds == [ActionKind.MARK_PICKED_UP]


def test_picked_up_assignment_on_ready_order_offers_nothing(make_order, make_assignment):
    order = make_order(status="ready_for_pickup")
    resolution = resolve_actions(order, RIDER, make_assignment(rider_id="rider-1", status="Picked Up"))
    assert resolution.actions == []


def test_other_rider_gets_nothing_on_assigned_order(make_order, make_assignment):
    order = make_order(status="ready_for_pickup")
    resolution = resolve_actions(order, ViewerContext(Role.RIDER, "rider-2"), make_assignment(rider_id="rider-1"))
    assert resolution.actions == []


def test_unassigned_ready_order_can_be_accepted(make_order):
    resolution = resolve_actions(make_order(status="ready_for_pickup"), RIDER)
    assert resolution.kinds == [ActionKind.ACCEPT_ORDER]


def test_gcash_unverified_waits_for_admin(make_order):
    order = make_order(status="out_for_delivery", payment_method="gcash", payment_status="pending")
    resolution = resolve_actions(order, RIDER)
    assert resolution.actions == []
    assert "GCASH" in resolution.notice.text


def test_paymaya_verified_goes_straight_to_delivery(make_order):
    order = make_order(status="out_for_delivery", payment_method="paymaya", payment_status="verified")
    assert resolve_actions(order, RIDER).kinds == [ActionKind.UPLOAD_PROOF, ActionKind.MARK_DELIVERED]


def test_failed_cod_offers_nothing(make_order):
    order = make_order(status="out_for_delivery", payment_method="cod", payment_status="failed")
    assert resolve_actions(order, RIDER).actions == []


# --- admin ---

def test_admin_gcash_without_payment_proof_is_disabled_with_reason(make_order):
    order = make_order(status="pending", payment_method="gcash", payment_status="pending")
    resolution = resolve_actions(order, ADMIN)
    verify = resolution.find(ActionKind.VERIFY_PAYMENT)
    assert verify is not None and not verify.enabled
    assert "proof of payment" in verify.reason
    # No advancing while the payment is unchecked
    assert resolution.find(ActionKind.ADVANCE_STATUS) is None
    assert resolution.kinds[-1] == ActionKind.CANCEL_ORDER


def test_admin_advance_never_targets_delivered(make_order):
    order = make_order(status="out_for_delivery", payment_status="verified")
    assert resolve_actions(order, ADMIN).find(ActionKind.ADVANCE_STATUS) is None

    order = make_order(status="preparing")
    advance = resolve_actions(order, ADMIN).find(ActionKind.ADVANCE_STATUS)
    assert advance.target_status == OrderStatus.READY_FOR_PICKUP.value


def test_admin_cod_pending_gets_rider_notice(make_order):
    resolution = resolve_actions(make_order(status="confirmed"), ADMIN)
    assert resolution.kinds == [ActionKind.ADVANCE_STATUS]
    assert "rider" in resolution.notice.text


# --- common ---

def test_busy_viewer_gets_every_action_disabled(make_order):
    order = make_order(status="pending", payment_method="gcash", payment_status="pending",
                       proof_of_payment_url="https://cdn/pay.jpg")
    resolution = resolve_actions(order, ViewerContext(Role.ADMIN, busy=True))
    assert resolution.actions
    assert all(not a.enabled and a.reason == BUSY_REASON for a in resolution.actions)


def test_customer_never_gets_actions(make_order):
    resolution = resolve_actions(make_order(status="cancelled", cancellation_reason="Out of stock"),
                                 ViewerContext(Role.CUSTOMER))
    assert resolution.actions == []
    assert "Out of stock" in resolution.notice.text


def test_missing_order_resolves_to_nothing():
    assert resolve_actions(None, RIDER) is NOTHING


def test_bad_role_degrades_to_nothing(make_order):
    assert resolve_actions(make_order(), ViewerContext("courier")) is NOTHING
