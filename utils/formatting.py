# utils/formatting.py
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union
from zoneinfo import ZoneInfo

from utils.config import TIMEZONE

_LOCAL_TZ = ZoneInfo(TIMEZONE)


# --- DATES ---

def _local(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(_LOCAL_TZ)


def _clock(dt: datetime) -> str:
    # "3:05 PM" without the leading zero on every platform
    return f"{dt.hour % 12 or 12}:{dt:%M} {dt:%p}"


def format_order_date(dt: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Relative date for order lists:
    under 24h -> "3:05 PM", under 48h -> "Yesterday, 3:05 PM", older -> "Mar 4, 3:05 PM".
    """
    if dt is None:
        return "—"
    dt = _local(dt)
    if now is None:
        now = datetime.now(dt.tzinfo) if dt.tzinfo else datetime.now()
    else:
        now = _local(now)

    age = now - dt
    if age < timedelta(hours=24):
        return _clock(dt)
    if age < timedelta(hours=48):
        return f"Yesterday, {_clock(dt)}"
    return f"{dt:%b} {dt.day}, {_clock(dt)}"


def format_datetime(dt: Optional[datetime]) -> str:
    """Full date for detail screens: "Mar 4, 2025, 03:05 PM"."""
    if dt is None:
        return "—"
    dt = _local(dt)
    return f"{dt:%b} {dt.day}, {dt:%Y, %I:%M %p}"


# --- MONEY ---

def format_money(amount: Union[Decimal, float, int, None]) -> str:
    value = Decimal(str(amount or 0))
    return f"₱{value:,.2f}"


# --- CUSTOMIZATION ---

def get_refined_customization(item) -> Optional[dict]:
    """
    Pulls the essentials out of an order item's customization payload:
    size, crust, slice, toppings, total price and special instructions.
    Returns None when nothing worth showing is present.
    """
    details = getattr(item, "customization_details", None)
    if not isinstance(details, dict) or not details:
        # Older rows keep the pizza fields on the item itself
        details = {
            "pizza_size": getattr(item, "pizza_size", None),
            "pizza_crust": getattr(item, "pizza_crust", None),
            "pizza_slice": getattr(item, "pizza_slice", None),
            "toppings": list(getattr(item, "toppings", None) or []),
        }

    refined: dict = {}
    if details.get("pizza_size"):
        refined["pizza_size"] = details["pizza_size"]
    elif details.get("size"):
        refined["size"] = details["size"]

    if details.get("pizza_crust"):
        refined["crust"] = details["pizza_crust"]
    elif details.get("crust"):
        refined["crust"] = details["crust"]

    if details.get("pizza_slice"):
        refined["slice"] = details["pizza_slice"]

    toppings = details.get("toppings")
    if isinstance(toppings, list) and toppings:
        refined["toppings"] = [str(t) for t in toppings]

    if details.get("total_price"):
        refined["total_price"] = details["total_price"]
    if details.get("special_instructions"):
        refined["special_instructions"] = details["special_instructions"]

    if not any(k in refined for k in ("pizza_size", "size", "crust", "slice", "toppings")):
        return None
    return refined


def format_size_and_crust(refined: dict) -> Optional[str]:
    parts = []
    size = refined.get("pizza_size") or refined.get("size")
    if size:
        parts.append(f"Size: {size}")
    if refined.get("crust"):
        parts.append(f"Crust: {refined['crust']}")
    if refined.get("slice"):
        parts.append(f"Slice: {refined['slice']}")
    return " • ".join(parts) if parts else None


def format_toppings(refined: dict) -> Optional[str]:
    toppings = refined.get("toppings")
    if not toppings:
        return None
    return f"Toppings: {', '.join(toppings)}"


def get_compact_customization_display(item) -> Optional[str]:
    """One line for order cards, toppings cut after two."""
    refined = get_refined_customization(item)
    if not refined:
        return None

    parts = []
    size_crust = format_size_and_crust(refined)
    if size_crust:
        parts.append(size_crust)

    toppings = refined.get("toppings") or []
    if toppings:
        if len(toppings) > 2:
            text = f"{', '.join(toppings[:2])} +{len(toppings) - 2} more"
        else:
            text = ", ".join(toppings)
        parts.append(f"Toppings: {text}")

    return " • ".join(parts) if parts else None


def get_detailed_customization_display(item) -> Optional[list[tuple[str, str]]]:
    """(label, value) rows for the detail screen."""
    refined = get_refined_customization(item)
    if not refined:
        return None

    rows = []
    size_crust = format_size_and_crust(refined)
    if size_crust:
        rows.append(("Details", size_crust))
    toppings = format_toppings(refined)
    if toppings:
        rows.append(("Toppings", toppings))
    if refined.get("special_instructions"):
        rows.append(("Note", refined["special_instructions"]))
    return rows or None
