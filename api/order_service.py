"""
Order reads and writes against the backend.

Reads return `Order` snapshots; mutations that the rider triggers from the
detail screen (COD check, proof, delivery) return a ServiceResult so the
screen can show the message without catching anything. Admin mutations raise
BackendError and the handler reports it.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from api.errors import BackendError, OrderNotFound
from api.supabase_client import SupabaseClient, eq, in_, is_null
from database.models.order import DeliveryAssignment, DeliveryOrder, Order, ServiceResult
from utils.logger import get_logger
from utils.save_image import content_type_for, proof_storage_path
from utils.statuses import (
    AssignmentStatus, OrderStatus, PaymentMethod, PaymentStatus, normalize_status,
)

log = get_logger("[OrderService]")

ORDER_SELECT = (
    "*,"
    "items:order_items(*,product:products(name,image_url)),"
    "delivery_address:addresses(*),"
    "user:profiles!orders_user_id_fkey(full_name,phone_number)"
)

# Status -> timestamp column written together with it
STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED.value: "confirmed_at",
    OrderStatus.PREPARING.value: "prepared_at",
    OrderStatus.READY_FOR_PICKUP.value: "picked_up_at",
    OrderStatus.DELIVERED.value: "delivered_at",
    OrderStatus.CANCELLED.value: "cancelled_at",
}

PROOF_UPLOAD_FAILED = "Failed to upload delivery proof"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class OrderFilters:
    status: Optional[Iterable[str]] = None
    payment_status: Optional[Iterable[str]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None

    def to_params(self) -> dict:
        params: dict = {}
        if self.status:
            params["status"] = in_(sorted(normalize_status(s) for s in self.status))
        if self.payment_status:
            params["payment_status"] = in_(sorted(self.payment_status))
        # Both bounds on one column need PostgREST's and=() form
        bounds = []
        if self.date_from:
            bounds.append(f"created_at.gte.{self.date_from.isoformat()}")
        if self.date_to:
            bounds.append(f"created_at.lte.{self.date_to.isoformat()}")
        if bounds:
            params["and"] = f"({','.join(bounds)})"
        if self.search:
            term = self.search.strip().replace(",", " ")
            params["order_number"] = f"ilike.*{term}*"
        return params


@dataclass
class OrderStats:
    total_orders: int = 0
    pending_orders: int = 0
    preparing_orders: int = 0
    out_for_delivery: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")
    by_status: dict = field(default_factory=dict)

    @property
    def average_order_value(self) -> Decimal:
        if not self.total_orders:
            return Decimal("0.00")
        return (self.total_revenue / self.total_orders).quantize(Decimal("0.01"))

    @property
    def completion_rate(self) -> float:
        if not self.total_orders:
            return 0.0
        return self.delivered_orders / self.total_orders * 100


class OrderService:
    def __init__(self, client: SupabaseClient, proof_bucket: str = "deliveries"):
        self.client = client
        self.proof_bucket = proof_bucket

    # --- 1. READS ---

    async def get_admin_orders(self, filters: Optional[OrderFilters] = None) -> list[Order]:
        params = {"select": ORDER_SELECT, "order": "created_at.desc"}
        if filters:
            params.update(filters.to_params())
        rows = await self.client.select("orders", params)
        return [Order.from_record(r) for r in rows]

    async def get_user_orders(self, user_id: str, filters: Optional[OrderFilters] = None) -> list[Order]:
        params = {"select": ORDER_SELECT, "user_id": eq(user_id), "order": "created_at.desc"}
        if filters:
            params.update(filters.to_params())
        rows = await self.client.select("orders", params)
        return [Order.from_record(r) for r in rows]

    async def get_order_by_id(self, order_id: str) -> Order:
        row = await self.client.select_single(
            "orders",
            {"select": ORDER_SELECT, "id": eq(order_id)},
            not_found=OrderNotFound(order_id),
        )
        return Order.from_record(row)

    async def get_available_orders(self) -> list[DeliveryOrder]:
        """Ready orders nobody has taken yet, oldest first."""
        rows = await self.client.select("orders", {
            "select": ORDER_SELECT,
            "status": eq(OrderStatus.READY_FOR_PICKUP.value),
            "assigned_delivery_id": is_null(),
            "order": "created_at.asc",
        })
        return [DeliveryOrder.from_record(r) for r in rows]

    async def get_order_stats(self) -> OrderStats:
        rows = await self.client.select("orders", {"select": "status,total_amount"})
        stats = OrderStats(total_orders=len(rows))
        for row in rows:
            status = normalize_status(row.get("status"))
            stats.by_status[status] = stats.by_status.get(status, 0) + 1
            stats.total_revenue += Decimal(str(row.get("total_amount") or 0))

        stats.pending_orders = stats.by_status.get(OrderStatus.PENDING.value, 0)
        stats.preparing_orders = stats.by_status.get(OrderStatus.PREPARING.value, 0)
        stats.out_for_delivery = stats.by_status.get(OrderStatus.OUT_FOR_DELIVERY.value, 0)
        stats.delivered_orders = stats.by_status.get(OrderStatus.DELIVERED.value, 0)
        stats.cancelled_orders = stats.by_status.get(OrderStatus.CANCELLED.value, 0)
        return stats

    async def get_assignment(self, order_id: str) -> Optional[DeliveryAssignment]:
        rows = await self.client.select("delivery_assignments", {
            "select": "*",
            "order_id": eq(order_id),
            "order": "assigned_at.desc.nullslast",
            "limit": "1",
        })
        return DeliveryAssignment.from_record(rows[0]) if rows else None

    # --- 2. ADMIN WRITES ---

    async def update_order_status(self, order_id: str, status: str, actor: str, notes: Optional[str] = None) -> None:
        status = normalize_status(status)
        now = _now()
        payload = {"status": status, "updated_at": now}
        column = STATUS_TIMESTAMPS.get(status)
        if column:
            payload[column] = now
        await self.client.update("orders", payload, {"id": eq(order_id)})
        self._track(order_id, status, actor, notes)

    async def verify_payment(self, order_id: str, admin_id: str) -> None:
        """Marks a GCash/PayMaya payment as checked and sends the order to the kitchen."""
        now = _now()
        await self.client.update("orders", {
            "payment_status": PaymentStatus.VERIFIED.value,
            "payment_verified": True,
            "payment_verified_at": now,
            "payment_verified_by": admin_id,
            "status": OrderStatus.PREPARING.value,
            "prepared_at": now,
            "updated_at": now,
        }, {"id": eq(order_id)})
        self._track(order_id, OrderStatus.PREPARING.value, admin_id, "Payment verified")

    async def cancel_order(self, order_id: str, reason: str, actor: str) -> None:
        now = _now()
        await self.client.update("orders", {
            "status": OrderStatus.CANCELLED.value,
            "cancellation_reason": reason,
            "cancelled_at": now,
            "updated_at": now,
        }, {"id": eq(order_id)})
        self._track(order_id, OrderStatus.CANCELLED.value, actor, reason)

    async def assign_order_to_delivery(self, order_id: str, rider_id: str) -> None:
        await self.client.update("orders", {
            "assigned_delivery_id": rider_id,
            "status": OrderStatus.OUT_FOR_DELIVERY.value,
            "updated_at": _now(),
        }, {"id": eq(order_id)})
        self._track(order_id, OrderStatus.OUT_FOR_DELIVERY.value, rider_id)

    # --- 3. RIDER WRITES ---

    async def verify_cod_payment(self, order_id: str, actor_id: str) -> ServiceResult:
        try:
            order = await self.get_order_by_id(order_id)
            if order.payment_method != PaymentMethod.COD.value:
                return ServiceResult(False, "This order is not a COD payment")
            if order.payment_verified:
                return ServiceResult(False, "Payment has already been verified")

            now = _now()
            await self._ensure_assignment(order_id, actor_id, AssignmentStatus.PICKED_UP.value, now,
                                          picked_up_at=now)
            await self.client.update("orders", {
                "payment_status": PaymentStatus.VERIFIED.value,
                "payment_verified": True,
                "payment_verified_at": now,
                "payment_verified_by": actor_id,
                "updated_at": now,
            }, {"id": eq(order_id)})
        except BackendError as e:
            log.error(f"COD verification failed for order {order_id}: {e.message}")
            return ServiceResult(False, e.message)

        log.info(f"COD payment for order {order_id} verified by {actor_id}")
        return ServiceResult(True, "Cash payment confirmed. You can now complete the delivery.")

    async def upload_delivery_proof(self, order_id: str, actor_id: str, image_uri: str) -> ServiceResult:
        """Uploads (or replaces) the proof photo without touching the order status."""
        try:
            url = await self._store_proof(order_id, image_uri)
            await self.client.update("orders", {
                "proof_of_delivery_url": url,
                "updated_at": _now(),
            }, {"id": eq(order_id)})
        except BackendError as e:
            log.error(f"Proof upload failed for order {order_id}: {e.message}")
            return ServiceResult(False, e.message)
        except OSError as e:
            log.error(f"Could not read proof photo {image_uri}: {e}")
            return ServiceResult(False, PROOF_UPLOAD_FAILED)

        log.info(f"Proof of delivery for order {order_id} uploaded by {actor_id}")
        return ServiceResult(True, "Proof of delivery uploaded successfully!", proof_uploaded=True)

    async def mark_order_delivered(self, order_id: str, actor_id: str,
                                   image_uri: Optional[str] = None) -> ServiceResult:
        """
        Completes the delivery. A failed photo upload does not stop it; the result
        says whether the proof made it (`proof_uploaded`).
        """
        proof_url = None
        if image_uri:
            try:
                proof_url = await self._store_proof(order_id, image_uri)
            except (BackendError, OSError) as e:
                log.error(f"Proof upload failed for order {order_id}, delivering without it: {e}")

        now = _now()
        try:
            await self._ensure_assignment(order_id, actor_id, AssignmentStatus.DELIVERED.value, now,
                                          picked_up_at=now, delivered_at=now)
        except BackendError as e:
            # The order row is what everyone reads, the assignment is bookkeeping
            log.error(f"Assignment update failed for delivered order {order_id}: {e.message}")

        payload = {
            "status": OrderStatus.DELIVERED.value,
            "delivered_at": now,
            "actual_delivery_time": now,
            "updated_at": now,
        }
        if proof_url:
            payload["proof_of_delivery_url"] = proof_url
        try:
            await self.client.update("orders", payload, {"id": eq(order_id)})
        except BackendError as e:
            log.error(f"Could not mark order {order_id} delivered: {e.message}")
            return ServiceResult(False, e.message)

        self._track(order_id, OrderStatus.DELIVERED.value, actor_id)
        uploaded = proof_url is not None
        return ServiceResult(
            True,
            "Order marked as delivered with proof photo!" if uploaded else "Order marked as delivered!",
            proof_uploaded=uploaded,
        )

    # --- 4. HELPERS ---

    async def _store_proof(self, order_id: str, image_uri: str) -> str:
        path = Path(image_uri)
        content = await asyncio.to_thread(path.read_bytes)
        storage_path = proof_storage_path(order_id, path.suffix.lower() or ".jpg")
        return await self.client.upload_file(self.proof_bucket, storage_path, content, content_type_for(path))

    async def _ensure_assignment(self, order_id: str, rider_id: str, status: str, now: str, **timestamps) -> None:
        """Creates the rider's assignment or moves the existing one to `status`."""
        existing = await self.client.select("delivery_assignments", {
            "select": "id,rider_id,assigned_at,picked_up_at",
            "order_id": eq(order_id),
            "limit": "1",
        })
        if not existing:
            await self.client.insert("delivery_assignments", {
                "order_id": order_id,
                "rider_id": rider_id,
                "status": status,
                "assigned_at": now,
                **timestamps,
            })
            return

        row = existing[0]
        payload = {"rider_id": rider_id, "status": status, "assigned_at": row.get("assigned_at") or now}
        for column, value in timestamps.items():
            # Earlier steps keep their original time
            payload[column] = value if column == "delivered_at" else (row.get(column) or value)
        await self.client.update("delivery_assignments", payload, {"id": eq(row["id"])})

    @staticmethod
    def _track(order_id: str, status: str, actor: Optional[str], notes: Optional[str] = None) -> None:
        log.info(f"Order {order_id} -> {status} by {actor or 'system'}" + (f" ({notes})" if notes else ""))
