from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from api.errors import AssignmentConflict
from api.order_service import OrderService
from api.supabase_client import SupabaseClient, eq, is_null
from database.models.order import DeliveryAssignment, Order
from utils.logger import get_logger
from utils.statuses import AssignmentStatus, OrderStatus

log = get_logger("[RiderService]")

ASSIGNMENT_SELECT = (
    "*,"
    "order:orders("
    "*,"
    "items:order_items(*,product:products(name,image_url)),"
    "delivery_address:addresses(*),"
    "customer:profiles!orders_user_id_fkey(full_name,phone_number)"
    ")"
)


@dataclass
class RiderOrder:
    assignment: DeliveryAssignment
    order: Order


class RiderService:
    def __init__(self, client: SupabaseClient, orders: OrderService):
        self.client = client
        self.orders = orders

    async def get_assignment(self, order_id: str) -> Optional[DeliveryAssignment]:
        return await self.orders.get_assignment(order_id)

    async def get_rider_orders(self, rider_id: str) -> list[RiderOrder]:
        """Everything ever assigned to the rider, newest first."""
        rows = await self.client.select("delivery_assignments", {
            "select": ASSIGNMENT_SELECT,
            "rider_id": eq(rider_id),
            "order": "assigned_at.desc",
        })
        result = []
        for row in rows:
            order = Order.from_record(row.get("order"))
            if order is None:
                log.warning(f"Assignment {row.get('id')} points to a missing order")
                continue
            result.append(RiderOrder(DeliveryAssignment.from_record(row), order))
        return result

    async def accept_order(self, order_id: str, rider_id: str) -> None:
        """
        Claims a ready order for the rider. The claim is a conditional update, so
        of two riders accepting at once only one gets the order; the other gets
        AssignmentConflict. The order stays ready_for_pickup until picked up.
        """
        claimed = await self.client.update(
            "orders",
            {"assigned_delivery_id": rider_id},
            {"id": eq(order_id), "assigned_delivery_id": is_null()},
        )
        if not claimed:
            order = await self.orders.get_order_by_id(order_id)
            if order.assigned_delivery_id != rider_id:
                log.info(f"Order {order_id} already taken by {order.assigned_delivery_id}")
                raise AssignmentConflict()

        assignment = await self.get_assignment(order_id)
        if assignment and assignment.rider_id and assignment.rider_id != rider_id:
            raise AssignmentConflict()

        now = datetime.now(timezone.utc).isoformat()
        if assignment is None:
            await self.client.insert("delivery_assignments", {
                "order_id": order_id,
                "rider_id": rider_id,
                "status": AssignmentStatus.ASSIGNED.value,
                "assigned_at": now,
            })
        else:
            await self.client.update("delivery_assignments", {
                "rider_id": rider_id,
                "status": AssignmentStatus.ASSIGNED.value,
                "assigned_at": assignment.assigned_at or now,
            }, {"id": eq(assignment.id)})
        log.info(f"Order {order_id} accepted by rider {rider_id}")

    async def mark_order_picked_up(self, order_id: str, rider_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.client.update("delivery_assignments", {
            "status": AssignmentStatus.PICKED_UP.value,
            "picked_up_at": now,
        }, {"order_id": eq(order_id), "rider_id": eq(rider_id)})
        await self.client.update("orders", {
            "status": OrderStatus.OUT_FOR_DELIVERY.value,
            "updated_at": now,
        }, {"id": eq(order_id)})
        log.info(f"Order {order_id} picked up by rider {rider_id}")
