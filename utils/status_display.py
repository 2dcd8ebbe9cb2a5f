# utils/status_display.py
"""
Status labels, color tokens and icons for every role.

Pure lookups: safe to call on every render, never raise, and fall back to a
neutral badge for codes the bot doesn't know yet.
"""
from dataclasses import dataclass
from typing import Optional

from utils.statuses import OrderStatus, PaymentStatus, Role, normalize_status

# Color tokens, resolved by whatever renders them
WARNING = "warning"
INFO = "info"
ACCENT = "accent"
PRIMARY = "primary"
SECONDARY = "secondary"
SUCCESS = "success"
ERROR = "error"
NEUTRAL = "text_secondary"

UNKNOWN_ICON = "❔"


@dataclass(frozen=True)
class StatusDisplay:
    label: str
    color: str
    icon: str

    def badge(self) -> str:
        return f"{self.icon} {self.label}"


# --- 1. LABELS PER ROLE ---
_CUSTOMER_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.CONFIRMED: "Preparing",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY_FOR_PICKUP: "Preparing",
    OrderStatus.OUT_FOR_DELIVERY: "On the Way",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

_ADMIN_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY_FOR_PICKUP: "Ready for Pickup",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

_RIDER_LABELS = {**_ADMIN_LABELS, OrderStatus.OUT_FOR_DELIVERY: "On the Way"}

_LABELS = {
    Role.CUSTOMER: _CUSTOMER_LABELS,
    Role.ADMIN: _ADMIN_LABELS,
    Role.RIDER: _RIDER_LABELS,
}

# Narrow layouts
_COMPACT_LABELS = {
    "Ready for Pickup": "Ready",
    "Out for Delivery": "Out",
}

# --- 2. COLORS AND ICONS ---
_CUSTOMER_COLORS = {
    OrderStatus.PENDING: WARNING,
    OrderStatus.CONFIRMED: WARNING,
    OrderStatus.PREPARING: WARNING,
    OrderStatus.READY_FOR_PICKUP: WARNING,
    OrderStatus.OUT_FOR_DELIVERY: INFO,
    OrderStatus.DELIVERED: SUCCESS,
    OrderStatus.CANCELLED: ERROR,
}

_STAFF_COLORS = {
    OrderStatus.PENDING: WARNING,
    OrderStatus.CONFIRMED: INFO,
    OrderStatus.PREPARING: ACCENT,
    OrderStatus.READY_FOR_PICKUP: PRIMARY,
    OrderStatus.OUT_FOR_DELIVERY: SECONDARY,
    OrderStatus.DELIVERED: SUCCESS,
    OrderStatus.CANCELLED: ERROR,
}

_COLORS = {
    Role.CUSTOMER: _CUSTOMER_COLORS,
    Role.ADMIN: _STAFF_COLORS,
    Role.RIDER: _STAFF_COLORS,
}

_ICONS = {
    OrderStatus.PENDING: "🕒",
    OrderStatus.CONFIRMED: "✅",
    OrderStatus.PREPARING: "👨‍🍳",
    OrderStatus.READY_FOR_PICKUP: "📦",
    OrderStatus.OUT_FOR_DELIVERY: "🛵",
    OrderStatus.DELIVERED: "🏁",
    OrderStatus.CANCELLED: "❌",
}

# Customers see one chef hat for the whole kitchen stage
_CUSTOMER_ICONS = {
    **_ICONS,
    OrderStatus.CONFIRMED: "👨‍🍳",
    OrderStatus.READY_FOR_PICKUP: "👨‍🍳",
}


def _role(role) -> Role:
    try:
        return Role(role)
    except ValueError:
        return Role.CUSTOMER


def _generic_label(raw: str) -> str:
    return raw.replace("_", " ").upper() if raw else "UNKNOWN"


def get_status_display(status: Optional[str], role=Role.CUSTOMER, compact: bool = False) -> StatusDisplay:
    role = _role(role)
    code = normalize_status(status)
    try:
        key = OrderStatus(code)
    except ValueError:
        return StatusDisplay(label=_generic_label(code), color=NEUTRAL, icon=UNKNOWN_ICON)

    label = _LABELS[role][key]
    if compact:
        label = _COMPACT_LABELS.get(label, label)
    icons = _CUSTOMER_ICONS if role == Role.CUSTOMER else _ICONS
    return StatusDisplay(label=label, color=_COLORS[role][key], icon=icons[key])


_PAYMENT_DISPLAY = {
    PaymentStatus.PENDING: StatusDisplay("Pending", WARNING, "🕒"),
    PaymentStatus.VERIFIED: StatusDisplay("Verified", SUCCESS, "✅"),
    PaymentStatus.FAILED: StatusDisplay("Failed", ERROR, "⚠️"),
    PaymentStatus.REFUNDED: StatusDisplay("Refunded", NEUTRAL, "↩️"),
}


def get_payment_status_display(payment_status: Optional[str]) -> StatusDisplay:
    code = (payment_status or "").strip().lower()
    try:
        return _PAYMENT_DISPLAY[PaymentStatus(code)]
    except ValueError:
        return StatusDisplay(label=_generic_label(code), color=NEUTRAL, icon=UNKNOWN_ICON)


_ASSIGNMENT_DISPLAY = {
    "assigned": StatusDisplay("Assigned", PRIMARY, "📋"),
    "picked up": StatusDisplay("Picked Up", WARNING, "🛵"),
    "delivered": StatusDisplay("Delivered", SUCCESS, "🏁"),
    "available": StatusDisplay("Available", INFO, "🕒"),
}


def get_assignment_status_display(assignment_status: Optional[str]) -> StatusDisplay:
    code = (assignment_status or "available").strip().lower()
    found = _ASSIGNMENT_DISPLAY.get(code)
    if found:
        return found
    return StatusDisplay(label=_generic_label(code), color=NEUTRAL, icon=UNKNOWN_ICON)


def payment_method_label(method: Optional[str]) -> str:
    return (method or "cod").upper()
