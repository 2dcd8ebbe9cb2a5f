# utils/tabs.py
from dataclasses import dataclass
from typing import Iterable, Optional

from utils.logger import get_logger
from utils.statuses import OrderStatus, Role

log = get_logger("[Tabs]")

ALL = "all"


@dataclass(frozen=True)
class Tab:
    key: str
    label: str
    statuses: Optional[frozenset]  # None = no filter

    def matches(self, status: str) -> bool:
        return self.statuses is None or status in self.statuses


def _tab(key: str, label: str, *statuses: OrderStatus) -> Tab:
    return Tab(key=key, label=label, statuses=frozenset(s.value for s in statuses) if statuses else None)


# The tab vocabulary is coarser than status codes on purpose:
# a status no tab covers is only visible under "All".
CUSTOMER_TABS = (
    _tab(ALL, "All"),
    _tab("pending", "Pending", OrderStatus.PENDING),
    _tab("preparing", "Preparing", OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP),
    _tab("on_the_way", "On the Way", OrderStatus.OUT_FOR_DELIVERY),
    _tab("delivered", "Delivered", OrderStatus.DELIVERED),
)

ADMIN_TABS = (
    _tab(ALL, "All"),
    _tab("pending", "Pending", OrderStatus.PENDING),
    _tab("confirmed", "Confirmed", OrderStatus.CONFIRMED),
    _tab("preparing", "Preparing", OrderStatus.PREPARING),
    _tab("ready_for_pickup", "Ready", OrderStatus.READY_FOR_PICKUP),
    _tab("out_for_delivery", "Out for Delivery", OrderStatus.OUT_FOR_DELIVERY),
    _tab("delivered", "Delivered", OrderStatus.DELIVERED),
    _tab("cancelled", "Cancelled", OrderStatus.CANCELLED),
)

RIDER_TABS = (
    _tab(ALL, "All"),
    _tab("ready", "Ready", OrderStatus.READY_FOR_PICKUP),
    _tab("on_the_way", "On the Way", OrderStatus.OUT_FOR_DELIVERY),
    _tab("delivered", "Delivered", OrderStatus.DELIVERED),
)

_TABS_BY_ROLE = {
    Role.CUSTOMER: CUSTOMER_TABS,
    Role.ADMIN: ADMIN_TABS,
    Role.RIDER: RIDER_TABS,
}


def tabs_for_role(role) -> tuple[Tab, ...]:
    try:
        return _TABS_BY_ROLE[Role(role)]
    except ValueError:
        return CUSTOMER_TABS


def resolve_tab_filter(tab_key: Optional[str], role) -> Optional[frozenset]:
    """
    Status set behind a tab, passed upstream as the server-side filter.
    None means "All". Unknown keys behave like "All".
    """
    if tab_key is None:
        return None
    # Display labels ("On the Way") are accepted as well as keys
    normalized = str(tab_key).strip().lower().replace(" ", "_")
    for tab in tabs_for_role(role):
        if normalized in (tab.key, tab.label.lower().replace(" ", "_")):
            return tab.statuses
    log.warning(f"Unknown tab '{tab_key}' for role {role}, showing all orders")
    return None


def count_orders_by_tab(orders: Iterable, role) -> dict[str, int]:
    """Client-side counts for the summary line, keyed by tab key."""
    tabs = tabs_for_role(role)
    counts = {tab.key: 0 for tab in tabs}
    for order in orders:
        for tab in tabs:
            if tab.matches(order.status):
                counts[tab.key] += 1
    return counts
