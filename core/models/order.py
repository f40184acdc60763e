# =============================================================================
# core/models/order.py - Order & Delivery Schemas
# =============================================================================
# An order is created when a creator accepts a brand's offer (id = offer id),
# becomes "paid" after checkout, and "delivered" once the creator uploads the
# work. The brand then marks it "completed".
#
# A delivery is stored at a fixed slot ("latest") per order, so a second
# delivery replaces the first.
# =============================================================================

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """
    Order lifecycle.

    Flow: pending -> paid -> in_progress -> delivered -> completed
    """
    PENDING = "pending"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"

    @property
    def display_text(self) -> str:
        return {
            OrderStatus.PENDING: "Pending Payment",
            OrderStatus.PAID: "Paid",
            OrderStatus.IN_PROGRESS: "In Progress",
            OrderStatus.DELIVERED: "Delivered",
            OrderStatus.COMPLETED: "Completed",
        }[self]

    @property
    def is_earned(self) -> bool:
        """Whether the creator has been paid for an order in this state."""
        return self in (
            OrderStatus.PAID,
            OrderStatus.IN_PROGRESS,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
        )


# Statuses from which a creator may (re)deliver work
DELIVERABLE_STATUSES = (OrderStatus.PAID, OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED)


class Order(BaseModel):
    id: str
    brand_id: str
    creator_id: str
    amount: float = Field(..., ge=0)
    currency: str = "usd"
    trip_destination: str = ""
    trip_country: str = ""
    description: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    stripe_session_id: str | None = None
    has_delivery: bool = False
    created_at: datetime | None = None
    paid_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @property
    def formatted_amount(self) -> str:
        symbol = "$" if self.currency.lower() == "usd" else f"{self.currency.upper()} "
        return f"{symbol}{self.amount:,.2f}"


class DeliveryState(str, Enum):
    """
    Progress of the delivery write sequence.

    - recorded: delivery document written, order status not yet updated
    - committed: order status updated to delivered
    """
    RECORDED = "recorded"
    COMMITTED = "committed"


class DeliveryFile(BaseModel):
    """Metadata of one uploaded delivery file."""

    name: str
    size: int = Field(..., ge=0)
    type: str
    url: str
    storage_path: str
    uploaded_at: datetime


class Delivery(BaseModel):
    """
    Work delivered by a creator for an order.

    Example:
        {
            "order_id": "offer_1700000000_ab12cd34",
            "files": [{"name": "reel.mp4", "size": 1048576, "type": "video/mp4", ...}],
            "note_to_brand": "Raw files included",
            "external_links": "https://drive.example.com/...",
            "status": "delivered",
            "state": "committed"
        }
    """

    order_id: str
    files: list[DeliveryFile] = Field(default_factory=list)
    note_to_brand: str | None = None
    external_links: str | None = None
    delivered_at: datetime
    status: str = "delivered"
    state: DeliveryState = DeliveryState.RECORDED

    model_config = {"extra": "ignore"}


class OrderStats(BaseModel):
    """Brand dashboard summary."""

    total_orders: int = 0
    pending: int = 0
    paid: int = 0
    in_progress: int = 0
    delivered: int = 0
    completed: int = 0
    total_spent: float = 0.0


class CreatorEarningsStats(BaseModel):
    """Creator dashboard summary."""

    total_orders: int = 0
    total_earned: float = 0.0
    pending: int = 0
    pending_payment: float = 0.0
    in_progress: int = 0
    completed: int = 0
    average_per_order: float = 0.0
