# utils/statuses.py
from enum import Enum
from typing import Optional


# --- 1. STATUS CODES ---
class OrderStatus(str, Enum):
    PENDING = "pending"  # Placed, waiting for the kitchen
    CONFIRMED = "confirmed"  # Accepted by the kitchen
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"  # Waiting for the rider (or the customer for pickup orders)
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "cod"
    GCASH = "gcash"
    PAYMAYA = "paymaya"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    REFUNDED = "refunded"


class AssignmentStatus(str, Enum):
    ASSIGNED = "Assigned"
    PICKED_UP = "Picked Up"
    DELIVERED = "Delivered"


class FulfillmentType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    RIDER = "rider"


# --- 2. STATUS GROUPS ---

# Statuses from which an admin may still cancel
CANCELLABLE_STATUSES = {
    OrderStatus.PENDING.value,
    OrderStatus.PREPARING.value,
}

# Non-COD payments are checked by an admin, not by the rider
ADMIN_VERIFIED_METHODS = {
    PaymentMethod.GCASH.value,
    PaymentMethod.PAYMAYA.value,
}

# --- 3. TRANSITIONS (for admin buttons) ---
NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY_FOR_PICKUP,
    OrderStatus.READY_FOR_PICKUP: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
}

# The backend enum has been stored both as codes and as display strings
_LEGACY_STATUS_NAMES = {
    "pending": OrderStatus.PENDING,
    "confirmed": OrderStatus.CONFIRMED,
    "preparing": OrderStatus.PREPARING,
    "ready for pickup": OrderStatus.READY_FOR_PICKUP,
    "out for delivery": OrderStatus.OUT_FOR_DELIVERY,
    "delivered": OrderStatus.DELIVERED,
    "cancelled": OrderStatus.CANCELLED,
}


def normalize_status(raw: Optional[str]) -> str:
    """
    Converts any backend spelling of a status ("Out for Delivery", "OUT_FOR_DELIVERY")
    into the canonical code. Unknown values are returned lower-cased, never raised on.
    """
    if raw is None:
        return ""
    value = str(raw).strip()
    if not value:
        return ""
    lowered = value.lower()
    legacy = _LEGACY_STATUS_NAMES.get(lowered)
    if legacy is not None:
        return legacy.value
    return lowered.replace(" ", "_")


def normalize_assignment_status(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    lowered = str(raw).strip().lower().replace("_", " ")
    for status in AssignmentStatus:
        if status.value.lower() == lowered or status.value.lower().replace(" ", "") == lowered:
            return status.value
    return str(raw)


def next_status(status: str) -> Optional[str]:
    try:
        nxt = NEXT_STATUS.get(OrderStatus(status))
    except ValueError:
        return None
    return nxt.value if nxt else None
