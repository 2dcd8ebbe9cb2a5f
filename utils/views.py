# utils/views.py
"""
Screen texts. Every screen has the same four shapes: loading, empty, error
and not-found, plus the order list and order detail themselves.
"""
from typing import Optional, Sequence

from aiogram import html

from database.models.order import DeliveryAssignment, DeliveryOrder, Order
from utils.formatting import (
    format_datetime, format_money, format_order_date,
    get_compact_customization_display, get_detailed_customization_display,
)
from utils.order_actions import ActionResolution
from utils.phone import display_phone
from utils.status_display import (
    get_assignment_status_display, get_payment_status_display, get_status_display, payment_method_label,
)
from utils.statuses import Role
from utils.tabs import Tab

LOADING_TEXT = "⏳ Loading..."
NOT_FOUND_TEXT = "🔍 <b>Order not found</b>\n\nIt may have been removed or you don't have access to it."
GENERIC_ERROR = "Something went wrong. Please try again."

_EMPTY_TEXTS = {
    Role.CUSTOMER: "You have no orders here yet.",
    Role.ADMIN: "No orders with this status.",
    Role.RIDER: "No orders here right now.",
}

_ORDER_TITLES = {
    Role.CUSTOMER: "📋 <b>My orders</b>",
    Role.ADMIN: "📋 <b>Orders</b>",
    Role.RIDER: "🛵 <b>My deliveries</b>",
}


def error_text(message: Optional[str] = None) -> str:
    return f"⚠️ <b>Error</b>\n\n{html.quote(message or GENERIC_ERROR)}"


def empty_text(role, tab: Optional[Tab] = None) -> str:
    base = _EMPTY_TEXTS.get(Role(role), _EMPTY_TEXTS[Role.CUSTOMER])
    if tab is not None and tab.statuses is not None:
        return f"{base}\n<i>Tab: {tab.label}</i>"
    return base


def order_button_text(order: Order, role) -> str:
    status = get_status_display(order.status, role, compact=True)
    return f"{status.icon} #{order.order_number} · {format_money(order.total_amount)} · {format_order_date(order.created_at)}"


def orders_list_text(orders: Sequence[Order], role, tab: Tab, counts: Optional[dict] = None) -> str:
    lines = [_ORDER_TITLES.get(Role(role), _ORDER_TITLES[Role.CUSTOMER])]
    if counts:
        lines.append(f"Total: <code>{counts.get('all', len(orders))}</code>")
    lines.append(f"Showing: <b>{tab.label}</b> ({len(orders)})")
    if not orders:
        lines.append("")
        lines.append(empty_text(role, tab))
    return "\n".join(lines)


def available_orders_text(orders: Sequence[DeliveryOrder]) -> str:
    if not orders:
        return "📦 <b>Available orders</b>\n\nNo orders are waiting for a rider. You'll get a message when one is ready."
    return f"📦 <b>Available orders</b>\n\nReady for pickup: <code>{len(orders)}</code>"


def _items_block(order: Order, detailed: bool) -> list[str]:
    if not order.items:
        return ["—"]
    lines = []
    for item in order.items:
        lines.append(f"• {html.quote(item.product_name)} ×{item.quantity} — {format_money(item.total_price)}")
        noted = False
        if detailed:
            for label, value in get_detailed_customization_display(item) or []:
                lines.append(f"   <i>{label}:</i> {html.quote(value)}")
                noted = noted or label == "Note"
        else:
            compact = get_compact_customization_display(item)
            if compact:
                lines.append(f"   <i>{html.quote(compact)}</i>")
        if item.special_instructions and not noted:
            lines.append(f"   <i>Note:</i> {html.quote(item.special_instructions)}")
    return lines


def _destination_block(order: Order) -> list[str]:
    if not order.is_delivery:
        where = order.pickup_location_snapshot or "Store"
        return ["🏪 <b>Pickup:</b> " + html.quote(where)]
    address = order.delivery_address
    if address is None:
        return ["📍 <b>Address:</b> not provided"]
    label = f"{html.quote(address.label)}: " if address.label else ""
    lines = [f"📍 <b>Address:</b> {label}{html.quote(address.full_address or '—')}"]
    instructions = order.delivery_instructions or address.special_instructions
    if instructions:
        lines.append(f"📝 <i>{html.quote(instructions)}</i>")
    return lines


def _totals_block(order: Order) -> list[str]:
    lines = [f"Subtotal: <code>{format_money(order.subtotal)}</code>"]
    if order.is_delivery:
        lines.append(f"Delivery fee: <code>{format_money(order.delivery_fee)}</code>")
    if order.tax_amount:
        lines.append(f"Tax: <code>{format_money(order.tax_amount)}</code>")
    if order.discount_amount:
        lines.append(f"Discount: <code>-{format_money(order.discount_amount)}</code>")
    lines.append(f"<b>Total: <code>{format_money(order.total_amount)}</code></b>")
    return lines


def order_detail_text(
        order: Order,
        role,
        resolution: Optional[ActionResolution] = None,
        assignment: Optional[DeliveryAssignment] = None,
) -> str:
    role = Role(role)
    status = get_status_display(order.status, role)
    payment = get_payment_status_display(order.payment_status)

    lines = [
        f"🧾 <b>Order #{html.quote(order.order_number)}</b>",
        f"{status.badge()}",
        f"Placed: {format_datetime(order.created_at)}",
        "",
        f"💳 {payment_method_label(order.payment_method)} · {payment.badge()}",
    ]

    if role != Role.CUSTOMER:
        lines.append("")
        lines.append(f"👤 <b>Customer:</b> {html.quote(order.customer_name or 'Unknown')}")
        lines.append(f"📞 {html.quote(display_phone(order.customer_phone))}")
    if role == Role.RIDER:
        lines.append(f"🚚 Assignment: {get_assignment_status_display(assignment.status if assignment else None).badge()}")

    lines.append("")
    lines.extend(_destination_block(order))
    lines.append("")
    lines.append("<b>Items:</b>")
    lines.extend(_items_block(order, detailed=role != Role.CUSTOMER))
    lines.append("")
    lines.extend(_totals_block(order))

    if order.notes:
        lines.append("")
        lines.append(f"💬 <i>{html.quote(order.notes)}</i>")
    if order.has_proof and role != Role.CUSTOMER:
        lines.append("")
        lines.append(f'📸 <a href="{html.quote(order.proof_of_delivery_url)}">Proof of delivery</a>')
    if order.proof_of_payment_url and role == Role.ADMIN:
        lines.append(f'🧾 <a href="{html.quote(order.proof_of_payment_url)}">Proof of payment</a>')
    if order.actual_delivery_time:
        lines.append(f"🏁 Delivered: {format_datetime(order.actual_delivery_time)}")

    if resolution is not None:
        if resolution.notice is not None:
            lines.append("")
            lines.append(f"ℹ️ <i>{html.quote(resolution.notice.text)}</i>")
        for action in resolution.actions:
            if not action.enabled and action.reason:
                lines.append(f"⚠️ <i>{html.quote(action.reason)}</i>")
                break
    return "\n".join(lines)


def available_order_text(delivery: DeliveryOrder) -> str:
    """Short card used in rider announcements."""
    order = delivery.order
    address = order.delivery_address.full_address if order.delivery_address else "—"
    return (
        f"📦 <b>New order ready for pickup</b>\n\n"
        f"#{html.quote(order.order_number)} · {format_money(order.total_amount)} · "
        f"{payment_method_label(order.payment_method)}\n"
        f"👤 {html.quote(delivery.customer_name or 'Customer')}\n"
        f"📍 {html.quote(address)}\n"
        f"⏱ ~{delivery.estimated_time} min"
    )
