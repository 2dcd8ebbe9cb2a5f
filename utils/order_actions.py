# utils/order_actions.py
"""
Which buttons an order detail screen offers, per role.

`resolve_actions` is a pure function of the order snapshot, the viewer and the
delivery assignment. It never raises: anything it can't make sense of yields
no actions, so rendering a screen never blocks on it.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from database.models.order import DeliveryAssignment, Order
from utils.logger import get_logger
from utils.status_display import ERROR, INFO, SUCCESS, WARNING, get_status_display
from utils.statuses import (
    ADMIN_VERIFIED_METHODS, CANCELLABLE_STATUSES, AssignmentStatus,
    OrderStatus, PaymentMethod, PaymentStatus, Role, next_status,
)

log = get_logger("[OrderActions]")


class ActionKind(str, Enum):
    # Short values, they travel inside callback_data
    VERIFY_COD_PAYMENT = "cod"
    VERIFY_PAYMENT = "pay"
    ACCEPT_ORDER = "acc"
    MARK_PICKED_UP = "pick"
    UPLOAD_PROOF = "proof"
    MARK_DELIVERED = "dlv"
    ADVANCE_STATUS = "adv"
    CANCEL_ORDER = "cxl"


# Payment verification always comes before anything that confirms delivery
PRIORITY = (
    ActionKind.VERIFY_COD_PAYMENT,
    ActionKind.VERIFY_PAYMENT,
    ActionKind.ACCEPT_ORDER,
    ActionKind.MARK_PICKED_UP,
    ActionKind.UPLOAD_PROOF,
    ActionKind.MARK_DELIVERED,
    ActionKind.ADVANCE_STATUS,
    ActionKind.CANCEL_ORDER,
)

BUSY_REASON = "Another action is in progress"


@dataclass(frozen=True)
class ViewerContext:
    """Who is looking at the screen. Passed in explicitly, never looked up."""
    role: Role
    user_id: Optional[str] = None
    busy: bool = False


@dataclass(frozen=True)
class OrderAction:
    kind: ActionKind
    label: str
    enabled: bool = True
    reason: Optional[str] = None
    target_status: Optional[str] = None
    # MarkDelivered without an existing proof has to go through the photo flow
    needs_capture: bool = False


@dataclass(frozen=True)
class Notice:
    text: str
    color: str


@dataclass(frozen=True)
class ActionResolution:
    actions: list[OrderAction] = field(default_factory=list)
    notice: Optional[Notice] = None

    @property
    def kinds(self) -> list[ActionKind]:
        return [a.kind for a in self.actions]

    def find(self, kind: ActionKind) -> Optional[OrderAction]:
        return next((a for a in self.actions if a.kind == kind), None)


NOTHING = ActionResolution()
DELIVERED_NOTICE = Notice("Order has been delivered successfully", SUCCESS)
CANCELLED_NOTICE = Notice("Order was cancelled", ERROR)
OTHER_RIDER_NOTICE = Notice("This order is assigned to another rider", INFO)


def _awaiting_admin_notice(method: str) -> Notice:
    return Notice(f"Waiting for admin to verify {method.upper()} payment before delivery", WARNING)


def _sorted(actions: list[OrderAction]) -> list[OrderAction]:
    return sorted(actions, key=lambda a: PRIORITY.index(a.kind))


# --- 1. RIDER ---

def _rider_actions(order: Order, ctx: ViewerContext,
                   assignment: Optional[DeliveryAssignment]) -> ActionResolution:
    status = order.status

    if status == OrderStatus.DELIVERED:
        return ActionResolution(notice=DELIVERED_NOTICE)
    if status == OrderStatus.CANCELLED:
        return ActionResolution(notice=CANCELLED_NOTICE)

    if status == OrderStatus.READY_FOR_PICKUP:
        if assignment is None:
            return ActionResolution([OrderAction(ActionKind.ACCEPT_ORDER, "Accept Order")])
        if assignment.rider_id != ctx.user_id:
            return ActionResolution(notice=OTHER_RIDER_NOTICE)
        if assignment.status in (AssignmentStatus.ASSIGNED.value, None):
            return ActionResolution([OrderAction(ActionKind.MARK_PICKED_UP, "Mark as Picked Up")])
        return NOTHING

    if status != OrderStatus.OUT_FOR_DELIVERY:
        return NOTHING

    if assignment is not None and assignment.rider_id and assignment.rider_id != ctx.user_id:
        return ActionResolution(notice=OTHER_RIDER_NOTICE)

    method = order.payment_method
    verified = order.payment_status == PaymentStatus.VERIFIED

    # GCash/PayMaya are checked by an admin, the rider can only wait
    if method in ADMIN_VERIFIED_METHODS and not verified:
        return ActionResolution(notice=_awaiting_admin_notice(method))

    if method == PaymentMethod.COD and order.payment_status == PaymentStatus.PENDING:
        return ActionResolution([OrderAction(ActionKind.VERIFY_COD_PAYMENT, "Verify COD Payment")])

    if verified or method != PaymentMethod.COD:
        proof_label = "Update Proof" if order.has_proof else "Upload Proof"
        return ActionResolution([
            OrderAction(ActionKind.UPLOAD_PROOF, proof_label, needs_capture=True),
            OrderAction(ActionKind.MARK_DELIVERED, "Mark as Delivered", needs_capture=not order.has_proof),
        ])

    # COD that failed or was refunded: nothing the rider can do here
    return NOTHING


# --- 2. ADMIN ---

def _admin_actions(order: Order, ctx: ViewerContext) -> ActionResolution:
    status = order.status

    if status == OrderStatus.DELIVERED:
        return ActionResolution(notice=DELIVERED_NOTICE)
    if status == OrderStatus.CANCELLED:
        return ActionResolution(notice=CANCELLED_NOTICE)

    actions: list[OrderAction] = []
    notice = None
    method = order.payment_method
    verified = order.payment_status == PaymentStatus.VERIFIED
    admin_checked = method in ADMIN_VERIFIED_METHODS

    if admin_checked and order.payment_status == PaymentStatus.PENDING:
        has_proof = bool(order.proof_of_payment_url)
        actions.append(OrderAction(
            ActionKind.VERIFY_PAYMENT,
            "Verify Payment & Start Preparing",
            enabled=has_proof,
            reason=None if has_proof else "No proof of payment uploaded by customer",
        ))
    elif method == PaymentMethod.COD and order.payment_status == PaymentStatus.PENDING:
        notice = Notice("COD payment will be verified by the rider upon delivery", INFO)

    target = next_status(status)
    # Delivery is confirmed by the rider, never from the admin screen
    if target and target != OrderStatus.DELIVERED and not (admin_checked and not verified):
        label = get_status_display(target, Role.ADMIN).label
        actions.append(OrderAction(ActionKind.ADVANCE_STATUS, f"Mark as {label}", target_status=target))

    if status in CANCELLABLE_STATUSES:
        actions.append(OrderAction(ActionKind.CANCEL_ORDER, "Cancel Order"))

    return ActionResolution(_sorted(actions), notice)


# --- 3. CUSTOMER ---

def _customer_actions(order: Order) -> ActionResolution:
    if order.status == OrderStatus.DELIVERED:
        return ActionResolution(notice=DELIVERED_NOTICE)
    if order.status == OrderStatus.CANCELLED:
        reason = f": {order.cancellation_reason}" if order.cancellation_reason else ""
        return ActionResolution(notice=Notice(f"Order was cancelled{reason}", ERROR))
    if order.payment_method in ADMIN_VERIFIED_METHODS and order.payment_status == PaymentStatus.PENDING:
        return ActionResolution(notice=Notice("We are verifying your payment", WARNING))
    return NOTHING


def _disable_all(resolution: ActionResolution) -> ActionResolution:
    return ActionResolution(
        [OrderAction(a.kind, a.label, False, BUSY_REASON, a.target_status, a.needs_capture)
         for a in resolution.actions],
        resolution.notice,
    )


def resolve_actions(order: Optional[Order], ctx: ViewerContext,
                    assignment: Optional[DeliveryAssignment] = None) -> ActionResolution:
    """
    Ordered list of actions the viewer may take next, plus an optional notice
    (terminal state, blocked payment). While `ctx.busy` is set every action is
    returned disabled so a second submission can't start.
    """
    if order is None:
        return NOTHING
    try:
        role = Role(ctx.role)
        if role == Role.RIDER:
            resolution = _rider_actions(order, ctx, assignment)
        elif role == Role.ADMIN:
            resolution = _admin_actions(order, ctx)
        else:
            resolution = _customer_actions(order)
    except Exception as e:
        log.exception(f"Could not resolve actions for order {getattr(order, 'id', '?')}: {e}")
        return NOTHING

    if ctx.busy and resolution.actions:
        return _disable_all(resolution)
    return resolution
