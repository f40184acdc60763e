# =============================================================================
# core/services/order_service.py - Order Business Logic
# =============================================================================
# Orders are keyed by the id of the offer they came from:
#   accept offer  -> pending   (create_pending_order)
#   checkout paid -> paid      (mark_paid, from the Stripe webhook)
#   creator start -> in_progress
#   delivery      -> delivered (DeliveryService)
#   brand accepts -> completed
# =============================================================================

import logging
from typing import Any

from app.exceptions import (
    InvalidOrderStateError,
    OrderAccessDeniedError,
    OrderNotFoundError,
)
from core.models.order import CreatorEarningsStats, Order, OrderStats, OrderStatus
from core.models.user import UserRole
from lib import collections
from lib.supabase_client import SupabaseStore
from lib.utils import parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)


class OrderService:
    """
    Service for order lookups and status transitions.

    Access checks live here: only the order's brand and creator can see it.
    """

    def __init__(self, store: SupabaseStore):
        self.store = store

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_order(self, order_id: str) -> Order | None:
        row = self.store.get(collections.ORDERS, order_id)
        return Order(**row) if row else None

    def get_order(self, order_id: str, user_id: str | None = None) -> Order:
        """
        Get an order by id.

        Args:
            order_id: The order id (same as the offer id)
            user_id: If provided, the user must be the order's brand or creator

        Raises:
            OrderNotFoundError: If missing or the user isn't a party to it
        """
        order = self.find_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if user_id and user_id not in (order.brand_id, order.creator_id):
            # Don't reveal that the order exists
            raise OrderNotFoundError(order_id)

        return order

    def list_orders(self, user_id: str, role: UserRole) -> list[Order]:
        """Orders where the user is the brand or the creator, newest first."""
        match role:
            case UserRole.BRAND:
                column = "brand_id"
            case UserRole.CREATOR:
                column = "creator_id"
            case _:
                raise ValueError(f"Unhandled role: {role!r}")

        rows = self.store.find(
            collections.ORDERS,
            eq={column: user_id},
            order_by="created_at",
            desc=True,
        )
        orders = [Order(**row) for row in rows]
        return sorted(orders, key=_created_sort_key, reverse=True)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_pending_order(
        self,
        offer_id: str,
        brand_id: str,
        creator_id: str,
        amount: float,
        trip_destination: str = "",
        trip_country: str = "",
        description: str | None = None,
        currency: str = "usd",
    ) -> Order:
        """
        Create the pending order for an accepted offer.

        Written at the offer id, so accepting twice doesn't duplicate it.
        """
        now = utc_now_iso()
        data = {
            "id": offer_id,
            "brand_id": brand_id,
            "creator_id": creator_id,
            "amount": amount,
            "currency": currency,
            "trip_destination": trip_destination,
            "trip_country": trip_country,
            "description": description or "",
            "status": OrderStatus.PENDING.value,
            "has_delivery": False,
            "created_at": now,
            "updated_at": now,
        }
        created = self.store.insert_if_absent(collections.ORDERS, data)
        if created:
            logger.info(f"Created pending order {offer_id}")
        return self.get_order(offer_id)

    def mark_paid(
        self,
        offer_id: str,
        brand_id: str,
        creator_id: str,
        amount: float,
        currency: str,
        stripe_session_id: str,
        trip_destination: str = "",
        trip_country: str = "",
    ) -> Order:
        """
        Record a completed checkout.

        Upserts, so a payment for an offer whose pending order was never
        written still produces a paid order. An order that is already paid
        or further along is returned unchanged; Stripe redelivers webhooks.
        """
        now = utc_now_iso()
        existing = self.store.get(collections.ORDERS, offer_id)
        if existing is not None and OrderStatus(existing["status"]).is_earned:
            logger.info(f"Order {offer_id} already {existing['status']}, ignoring session {stripe_session_id}")
            return Order(**existing)

        data: dict[str, Any] = {
            "id": offer_id,
            "brand_id": brand_id,
            "creator_id": creator_id,
            "amount": amount,
            "currency": currency,
            "trip_destination": trip_destination or (existing or {}).get("trip_destination", ""),
            "trip_country": trip_country or (existing or {}).get("trip_country", ""),
            "status": OrderStatus.PAID.value,
            "stripe_session_id": stripe_session_id,
            "paid_at": now,
            "updated_at": now,
        }
        if existing is None:
            data["created_at"] = now
            data["has_delivery"] = False

        row = self.store.upsert(collections.ORDERS, data)
        logger.info(f"Order {offer_id} marked paid (session {stripe_session_id})")
        return Order(**{**(existing or {}), **row})

    def update_status(self, order_id: str, status: OrderStatus, **extra: Any) -> None:
        """Write a new status; `completed` also stamps completed_at."""
        now = utc_now_iso()
        data: dict[str, Any] = {"status": status.value, "updated_at": now, **extra}
        if status == OrderStatus.COMPLETED:
            data["completed_at"] = now

        updated = self.store.update(collections.ORDERS, {"id": order_id}, data)
        if not updated:
            raise OrderNotFoundError(order_id)
        logger.info(f"Order {order_id} -> {status.value}")

    def start_work(self, order_id: str, user_id: str) -> Order:
        """Creator marks a paid order as in progress."""
        order = self.get_order(order_id, user_id)
        if order.creator_id != user_id:
            raise OrderAccessDeniedError(order_id, "creator")
        if order.status != OrderStatus.PAID:
            raise InvalidOrderStateError(order_id, order.status.value, [OrderStatus.PAID.value])

        self.update_status(order_id, OrderStatus.IN_PROGRESS)
        return self.get_order(order_id)

    def complete_order(self, order_id: str, user_id: str) -> Order:
        """Brand accepts the work and closes the order."""
        order = self.get_order(order_id, user_id)
        if order.brand_id != user_id:
            raise OrderAccessDeniedError(order_id, "brand")

        allowed = (OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED)
        if order.status not in allowed:
            raise InvalidOrderStateError(order_id, order.status.value, [s.value for s in allowed])

        self.update_status(order_id, OrderStatus.COMPLETED)
        return self.get_order(order_id)


# =============================================================================
# Stats
# =============================================================================

def calculate_order_stats(orders: list[Order]) -> OrderStats:
    """
    Brand dashboard totals.

    total_spent only counts orders that have been paid for.
    """
    stats = OrderStats()
    for order in orders:
        stats.total_orders += 1
        if order.status.is_earned:
            stats.total_spent += order.amount

        match order.status:
            case OrderStatus.PENDING:
                stats.pending += 1
            case OrderStatus.PAID:
                stats.paid += 1
            case OrderStatus.IN_PROGRESS:
                stats.in_progress += 1
            case OrderStatus.DELIVERED:
                stats.delivered += 1
            case OrderStatus.COMPLETED:
                stats.completed += 1

    return stats


def calculate_creator_earnings_stats(orders: list[Order]) -> CreatorEarningsStats:
    """
    Creator dashboard totals.

    - pending: accepted offers not yet paid
    - pending_payment: amount of paid orders whose work hasn't started
    - average_per_order: total_earned over the number of earned orders
    """
    stats = CreatorEarningsStats()
    earned_count = 0

    for order in orders:
        stats.total_orders += 1
        if order.status.is_earned:
            stats.total_earned += order.amount
            earned_count += 1

        match order.status:
            case OrderStatus.PENDING:
                stats.pending += 1
            case OrderStatus.PAID:
                stats.pending_payment += order.amount
            case OrderStatus.IN_PROGRESS:
                stats.in_progress += 1
            case OrderStatus.COMPLETED:
                stats.completed += 1

    stats.average_per_order = stats.total_earned / earned_count if earned_count else 0.0
    return stats


def _created_sort_key(order: Order) -> float:
    created = parse_timestamp(order.created_at)
    return created.timestamp() if created else 0.0
