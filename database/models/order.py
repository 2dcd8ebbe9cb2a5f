# database/models/order.py
"""
Read-only snapshots of backend records.

Every optional field has a documented default so the rest of the bot never
reads a raw dict. Records come from PostgREST JSON (plain dicts) or from asyncpg
(Record supports the same mapping access).
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from utils.statuses import (
    FulfillmentType, PaymentMethod, PaymentStatus,
    normalize_assignment_status, normalize_status,
)


def _decimal(value: Any, default: str = "0.00") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)


def _datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _lower(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value).strip().lower()


@dataclass
class DeliveryAddress:
    id: Optional[str] = None
    label: Optional[str] = None  # Home, Office...
    full_address: str = ""
    city: Optional[str] = None
    contact_phone: Optional[str] = None
    special_instructions: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_record(cls, record: Optional[Mapping]) -> Optional["DeliveryAddress"]:
        if not record:
            return None
        coords = record.get("coordinates") or {}
        full_address = record.get("full_address") or ", ".join(
            part for part in (record.get("street"), record.get("city")) if part
        )
        return cls(
            id=record.get("id"),
            label=record.get("label"),
            full_address=full_address,
            city=record.get("city"),
            contact_phone=record.get("contact_phone"),
            special_instructions=record.get("special_instructions"),
            latitude=coords.get("latitude"),
            longitude=coords.get("longitude"),
        )


@dataclass
class OrderItem:
    id: Optional[str]
    product_id: Optional[str]
    product_name: str
    quantity: int = 1
    unit_price: Decimal = Decimal("0.00")
    total_price: Decimal = Decimal("0.00")
    special_instructions: Optional[str] = None
    pizza_size: Optional[str] = None
    pizza_crust: Optional[str] = None
    pizza_slice: Optional[str] = None
    toppings: list[str] = field(default_factory=list)
    # JSON column, may arrive as a string
    customization_details: Optional[dict] = None

    @classmethod
    def from_record(cls, record: Mapping) -> "OrderItem":
        details = record.get("customization_details")
        if isinstance(details, str):
            try:
                details = json.loads(details)
            except ValueError:
                details = None
        if details is not None and not isinstance(details, dict):
            details = None

        product = record.get("product") or {}
        quantity = int(record.get("quantity") or 1)
        unit_price = _decimal(record.get("unit_price"))
        total = record.get("total_price")
        return cls(
            id=record.get("id"),
            product_id=record.get("product_id"),
            product_name=record.get("product_name") or product.get("name") or "Item",
            quantity=quantity,
            unit_price=unit_price,
            total_price=_decimal(total) if total is not None else unit_price * quantity,
            special_instructions=record.get("special_instructions"),
            pizza_size=record.get("pizza_size"),
            pizza_crust=record.get("pizza_crust"),
            pizza_slice=record.get("pizza_slice"),
            toppings=list(record.get("toppings") or []),
            customization_details=details,
        )


@dataclass
class DeliveryAssignment:
    id: Optional[str]
    order_id: str
    rider_id: Optional[str]
    status: Optional[str]  # Assigned | Picked Up | Delivered
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Optional[Mapping]) -> Optional["DeliveryAssignment"]:
        if not record:
            return None
        return cls(
            id=record.get("id"),
            order_id=record.get("order_id"),
            rider_id=record.get("rider_id"),
            status=normalize_assignment_status(record.get("status")),
            assigned_at=_datetime(record.get("assigned_at")),
            picked_up_at=_datetime(record.get("picked_up_at")),
            delivered_at=_datetime(record.get("delivered_at")),
        )


@dataclass
class Order:
    id: str
    order_number: str
    status: str
    payment_method: str = PaymentMethod.COD.value
    payment_status: str = PaymentStatus.PENDING.value
    fulfillment_type: str = FulfillmentType.DELIVERY.value
    user_id: Optional[str] = None

    items: list[OrderItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")

    # Mutually exclusive depending on fulfillment_type
    delivery_address: Optional[DeliveryAddress] = None
    pickup_location_snapshot: Optional[str] = None
    delivery_instructions: Optional[str] = None

    proof_of_delivery_url: Optional[str] = None
    proof_of_payment_url: Optional[str] = None
    assigned_delivery_id: Optional[str] = None

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    payment_verified_at: Optional[datetime] = None

    @property
    def is_delivery(self) -> bool:
        return self.fulfillment_type == FulfillmentType.DELIVERY.value

    @property
    def has_proof(self) -> bool:
        return bool(self.proof_of_delivery_url)

    @property
    def payment_verified(self) -> bool:
        return self.payment_status == PaymentStatus.VERIFIED.value

    @classmethod
    def from_record(cls, record: Mapping) -> Optional["Order"]:
        """
        Builds an order from a backend row. Returns None for an empty record.
        Defaults: payment_method=cod, payment_status=pending, fulfillment_type=delivery,
        money fields 0.00, order_number = last 8 chars of the id.
        """
        if not record:
            return None

        order_id = str(record["id"])
        payment_status = _lower(record.get("payment_status"), PaymentStatus.PENDING.value)
        # Older rows only carry the boolean flag
        if record.get("payment_verified") and payment_status == PaymentStatus.PENDING.value:
            payment_status = PaymentStatus.VERIFIED.value

        user = record.get("user") or record.get("customer") or {}
        address = record.get("delivery_address")
        return cls(
            id=order_id,
            order_number=record.get("order_number") or order_id[-8:],
            status=normalize_status(record.get("status")),
            payment_method=_lower(record.get("payment_method"), PaymentMethod.COD.value),
            payment_status=payment_status,
            fulfillment_type=_lower(record.get("fulfillment_type"), FulfillmentType.DELIVERY.value),
            user_id=record.get("user_id"),
            items=[OrderItem.from_record(i) for i in record.get("items") or []],
            subtotal=_decimal(record.get("subtotal")),
            delivery_fee=_decimal(record.get("delivery_fee")),
            tax_amount=_decimal(record.get("tax_amount")),
            discount_amount=_decimal(record.get("discount_amount")),
            total_amount=_decimal(record.get("total_amount")),
            delivery_address=DeliveryAddress.from_record(address) if isinstance(address, Mapping) else None,
            pickup_location_snapshot=record.get("pickup_location_snapshot"),
            delivery_instructions=record.get("delivery_instructions"),
            proof_of_delivery_url=record.get("proof_of_delivery_url"),
            proof_of_payment_url=record.get("proof_of_payment_url"),
            assigned_delivery_id=record.get("assigned_delivery_id"),
            customer_name=user.get("full_name"),
            customer_phone=user.get("phone_number"),
            notes=record.get("notes"),
            cancellation_reason=record.get("cancellation_reason"),
            created_at=_datetime(record.get("created_at")),
            estimated_delivery_time=_datetime(record.get("estimated_delivery_time")),
            actual_delivery_time=_datetime(record.get("actual_delivery_time")),
            payment_verified_at=_datetime(record.get("payment_verified_at")),
        )


@dataclass
class DeliveryOrder:
    """An order offered to riders, with the customer's contact."""
    order: Order
    customer_name: str
    customer_phone: str
    estimated_time: int = 30  # minutes

    @classmethod
    def from_record(cls, record: Mapping) -> "DeliveryOrder":
        order = Order.from_record(record)
        return cls(
            order=order,
            customer_name=order.customer_name or "",
            customer_phone=order.customer_phone or "",
        )


@dataclass
class ServiceResult:
    success: bool
    message: str
    proof_uploaded: bool = False
