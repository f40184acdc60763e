# =============================================================================
# app/routers/orders.py - Order & Delivery Endpoints
# =============================================================================
# Dashboards list orders from the brand's or the creator's side. Creators
# start work and upload deliveries; brands complete orders.
#
# Delivery uploads stream to storage while the request is open. Progress is
# published to the order's conversation as `delivery_progress` events, and
# the uploads stop if the client disconnects.
# =============================================================================

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from starlette.datastructures import UploadFile

from app.auth import AuthUser, get_current_user
from app.dependencies import Services, ServicesDep
from app.exceptions import DeliveryNotFoundError
from core.models.order import CreatorEarningsStats, Delivery, Order, OrderStats
from core.models.user import UserRole
from core.services import (
    CancellationToken,
    UploadSource,
    calculate_creator_earnings_stats,
    calculate_order_stats,
    conversation_id_for,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Publish progress in steps of this fraction (plus the final 1.0)
PROGRESS_STEP = 0.1
DISCONNECT_POLL_SECONDS = 0.5


# =============================================================================
# Helpers
# =============================================================================

def _resolve_role(services: Services, user_id: str, requested: UserRole | None) -> UserRole:
    """Explicit ?as=, else the profile role, else brand."""
    if requested is not None:
        return requested
    profile = services.users.find_profile(user_id)
    if profile is not None and profile.role is not None:
        return profile.role
    return UserRole.BRAND


def _upload_source(upload: UploadFile) -> UploadSource:
    size = upload.size
    if size is None:
        upload.file.seek(0, 2)
        size = upload.file.tell()
        upload.file.seek(0)
    return UploadSource(
        name=upload.filename or "file",
        content_type=upload.content_type or "application/octet-stream",
        size=size,
        stream=upload.file,
    )


def _progress_reporter(services: Services, order: Order):
    """Callback publishing per-file progress whenever it advances a step."""
    conversation_id = conversation_id_for(order.brand_id, order.creator_id)
    last_step: dict[int, int] = {}

    def report(index: int, fraction: float) -> None:
        step = int(fraction / PROGRESS_STEP)
        if fraction < 1.0 and last_step.get(index) == step:
            return
        last_step[index] = step
        services.publisher.delivery_progress(conversation_id, order.id, index, fraction)

    return report


async def _cancel_on_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


# =============================================================================
# Orders
# =============================================================================

@router.get("", response_model=list[Order])
async def list_orders(
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
    as_role: Annotated[UserRole | None, Query(alias="as", description="brand or creator")] = None,
):
    role = _resolve_role(services, user.id, as_role)
    return services.orders.list_orders(user.id, role)


@router.get("/stats")
async def order_stats(
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
    as_role: Annotated[UserRole | None, Query(alias="as", description="brand or creator")] = None,
) -> OrderStats | CreatorEarningsStats:
    """Brand spending totals or creator earnings, depending on the role."""
    role = _resolve_role(services, user.id, as_role)
    orders = services.orders.list_orders(user.id, role)
    match role:
        case UserRole.BRAND:
            return calculate_order_stats(orders)
        case UserRole.CREATOR:
            return calculate_creator_earnings_stats(orders)
        case _:
            raise ValueError(f"Unhandled role: {role!r}")


@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    return services.orders.get_order(order_id, user.id)


@router.post("/{order_id}/start", response_model=Order)
async def start_order(
    order_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """Creator starts work on a paid order."""
    return services.orders.start_work(order_id, user.id)


@router.post("/{order_id}/complete", response_model=Order)
async def complete_order(
    order_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """Brand accepts the delivered work."""
    return services.orders.complete_order(order_id, user.id)


# =============================================================================
# Delivery
# =============================================================================

@router.post("/{order_id}/delivery", response_model=Delivery)
async def deliver_order(
    order_id: str,
    request: Request,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Upload the delivery for an order (multipart form).

    Fields:
        files[]: One or more files
        note_to_brand: Optional note
        external_links: Optional links (e.g. a shared drive)

    Errors:
        400/413: Too many files, no files, or a file over the size limit
        409: Order isn't paid, in progress or delivered
        502: Some uploads failed (lists uploaded and failed files)
        500: Files uploaded and delivery recorded, but the order update failed
    """
    order = services.orders.get_order(order_id, user.id)

    form = await request.form()
    uploads = [
        item
        for item in form.getlist("files[]") + form.getlist("files")
        if isinstance(item, UploadFile)
    ]
    sources = [_upload_source(upload) for upload in uploads]

    token = CancellationToken()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, token))
    try:
        delivery = await services.deliveries.deliver_order(
            order_id,
            user.id,
            sources,
            note_to_brand=str(form.get("note_to_brand") or ""),
            external_links=str(form.get("external_links") or ""),
            on_progress=_progress_reporter(services, order),
            cancel_token=token,
        )
    finally:
        watcher.cancel()
        await form.close()

    return delivery


@router.get("/{order_id}/delivery", response_model=Delivery)
async def get_delivery(
    order_id: str,
    services: ServicesDep,
    user: AuthUser = Depends(get_current_user),
):
    services.orders.get_order(order_id, user.id)
    delivery = services.deliveries.get_order_delivery(order_id)
    if delivery is None:
        raise DeliveryNotFoundError(order_id)
    return delivery
