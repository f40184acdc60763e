# =============================================================================
# core/services/delivery_service.py - Order Delivery Business Logic
# =============================================================================
# A creator delivers work in two phases:
#
# 1. Upload: every file is streamed to storage under
#      deliveries/{order_id}/{epoch_ms}_{short_uuid}_{safe_name}
#    at most UPLOAD_MAX_CONCURRENCY at a time. All uploads are awaited; if any
#    failed the delivery is rejected, and the files that did upload stay in
#    storage.
#
# 2. Persist (a small saga over two documents):
#      a. write the delivery at slot "latest" with state="recorded"
#      b. set the order to "delivered"
#      c. mark the delivery state="committed"
#    If (b) fails the delivery stays "recorded" and reconcile_deliveries()
#    finishes it later (Celery beat), so a stored delivery always ends up
#    with a delivered order.
# =============================================================================

import asyncio
import logging
import re
import uuid
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from app.config import Settings
from app.exceptions import (
    DeliveryPersistenceError,
    DeliveryUploadError,
    FileTooLargeError,
    InvalidOrderStateError,
    NoDeliveryContentError,
    OrderAccessDeniedError,
    TooManyFilesError,
    UploadCancelledError,
)
from core.models.order import (
    DELIVERABLE_STATUSES,
    Delivery,
    DeliveryFile,
    DeliveryState,
    OrderStatus,
)
from core.services.order_service import OrderService
from core.services.storage_service import CancellationToken, StorageService, UploadSource
from lib import collections
from lib.supabase_client import SupabaseClientError, SupabaseStore
from lib.utils import epoch_ms, utc_now

logger = logging.getLogger(__name__)

# Called with (file_index, fraction 0..1)
FileProgressCallback = Callable[[int, float], None]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """Storage-safe version of an uploaded file name."""
    cleaned = _UNSAFE_CHARS.sub("_", name.rsplit("/", 1)[-1]).strip("._")
    return cleaned[:120] or "file"


def delivery_storage_path(order_id: str, filename: str) -> str:
    """Time-prefixed, collision-free object key for one delivery file."""
    return f"deliveries/{order_id}/{epoch_ms()}_{uuid.uuid4().hex[:8]}_{safe_filename(filename)}"


class DeliveryService:
    """
    Uploads delivery files and records deliveries against orders.

    Example:
        delivery = await deliveries.deliver_order(
            order_id, creator_id, sources,
            note_to_brand="Raw files included",
            on_progress=lambda i, p: print(i, p),
        )
    """

    def __init__(
        self,
        store: SupabaseStore,
        storage: StorageService,
        orders: OrderService,
        settings: Settings,
    ):
        self.store = store
        self.storage = storage
        self.orders = orders
        self.settings = settings

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    def validate_files(self, order_id: str, sources: list[UploadSource]) -> None:
        """
        Enforce the per-delivery file limits.

        Raises:
            NoDeliveryContentError: If no files were sent
            TooManyFilesError: If more than MAX_DELIVERY_FILES were sent
            FileTooLargeError: If any file exceeds MAX_UPLOAD_SIZE_MB
        """
        if not sources:
            raise NoDeliveryContentError(order_id)

        if len(sources) > self.settings.MAX_DELIVERY_FILES:
            raise TooManyFilesError(len(sources), self.settings.MAX_DELIVERY_FILES)

        max_bytes = self.settings.max_upload_size_bytes
        for source in sources:
            if source.size > max_bytes:
                raise FileTooLargeError(
                    source.name,
                    source.size / (1024 * 1024),
                    self.settings.MAX_UPLOAD_SIZE_MB,
                )

    async def upload_delivery_files(
        self,
        order_id: str,
        sources: list[UploadSource],
        on_progress: FileProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[DeliveryFile]:
        """
        Upload every file of a delivery and wait for all of them.

        Files upload concurrently (bounded by UPLOAD_MAX_CONCURRENCY), so they
        may finish in any order; the result keeps the input order.

        Raises:
            UploadCancelledError: If the token was cancelled
            DeliveryUploadError: If any upload failed; lists uploaded and failed files
        """
        token = cancel_token or CancellationToken()
        semaphore = asyncio.Semaphore(self.settings.UPLOAD_MAX_CONCURRENCY)

        async def upload_one(index: int, source: UploadSource) -> DeliveryFile:
            async with semaphore:
                path = delivery_storage_path(order_id, source.name)
                token.raise_if_cancelled(path)

                def report(fraction: float) -> None:
                    if on_progress is not None:
                        on_progress(index, fraction)

                url = await self.storage.upload(path, source, on_progress=report, cancel_token=token)
                return DeliveryFile(
                    name=source.name,
                    size=source.size,
                    type=source.content_type,
                    url=url,
                    storage_path=path,
                    uploaded_at=utc_now(),
                )

        results = await asyncio.gather(
            *(upload_one(i, s) for i, s in enumerate(sources)),
            return_exceptions=True,
        )

        uploaded: list[DeliveryFile] = []
        failed: dict[str, str] = {}
        for source, result in zip(sources, results):
            if isinstance(result, DeliveryFile):
                uploaded.append(result)
            elif isinstance(result, Exception):
                failed[source.name] = str(getattr(result, "message", result))
            else:
                # CancelledError and other BaseExceptions are not ours to handle
                raise result

        if token.cancelled:
            raise UploadCancelledError(f"deliveries/{order_id}")

        if failed:
            logger.error(
                f"Delivery upload for order {order_id}: "
                f"{len(failed)} failed, {len(uploaded)} uploaded and left in storage"
            )
            raise DeliveryUploadError(order_id, [f.storage_path for f in uploaded], failed)

        logger.info(f"Uploaded {len(uploaded)} delivery files for order {order_id}")
        return uploaded

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save_order_delivery(self, order_id: str, delivery: Delivery) -> Delivery:
        """
        Store the delivery at slot "latest" and mark the order delivered.

        Raises:
            OrderNotFoundError: If the order doesn't exist
            DeliveryPersistenceError: If the delivery was recorded but the order
                update failed (the reconciler completes it later)
        """
        self.orders.get_order(order_id)

        recorded = delivery.model_copy(update={"state": DeliveryState.RECORDED})
        self.store.upsert(
            collections.ORDER_DELIVERIES,
            self._delivery_row(recorded),
            on_conflict="order_id,slot",
        )
        logger.info(f"Delivery recorded for order {order_id} ({len(delivery.files)} files)")

        try:
            self._mark_order_delivered(order_id, delivery)
        except SupabaseClientError as e:
            logger.error(f"Order {order_id} not updated after delivery was recorded: {e}")
            raise DeliveryPersistenceError(order_id, e.message)

        try:
            self._set_state(order_id, DeliveryState.COMMITTED)
        except SupabaseClientError as e:
            logger.warning(f"Delivery for {order_id} left in recorded state: {e}")
            return recorded

        return delivery.model_copy(update={"state": DeliveryState.COMMITTED})

    def get_order_delivery(self, order_id: str) -> Delivery | None:
        rows = self.store.find(
            collections.ORDER_DELIVERIES,
            eq={"order_id": order_id, "slot": collections.DELIVERY_SLOT_LATEST},
            limit=1,
        )
        return Delivery(**rows[0]) if rows else None

    def has_order_delivery(self, order_id: str) -> bool:
        return self.get_order_delivery(order_id) is not None

    def reconcile_deliveries(self, grace_seconds: int | None = None) -> int:
        """
        Finish deliveries stuck in the recorded state.

        Only deliveries recorded more than `grace_seconds` ago are touched, so
        requests still in flight are left alone.

        Returns:
            Number of deliveries committed
        """
        grace = self.settings.DELIVERY_RECONCILE_GRACE_SECONDS if grace_seconds is None else grace_seconds
        cutoff = (utc_now() - timedelta(seconds=grace)).isoformat()

        rows = self.store.find(
            collections.ORDER_DELIVERIES,
            eq={"state": DeliveryState.RECORDED.value},
            lt={"recorded_at": cutoff},
        )

        committed = 0
        for row in rows:
            delivery = Delivery(**row)
            order = self.orders.find_order(delivery.order_id)
            if order is None:
                logger.warning(f"Recorded delivery without order: {delivery.order_id}")
                continue

            try:
                if order.status not in (OrderStatus.DELIVERED, OrderStatus.COMPLETED):
                    self._mark_order_delivered(delivery.order_id, delivery)
                self._set_state(delivery.order_id, DeliveryState.COMMITTED)
            except SupabaseClientError as e:
                logger.error(f"Reconcile failed for order {delivery.order_id}: {e}")
                continue

            committed += 1
            logger.info(f"Reconciled delivery for order {delivery.order_id}")

        return committed

    # -------------------------------------------------------------------------
    # Full flow
    # -------------------------------------------------------------------------

    async def deliver_order(
        self,
        order_id: str,
        creator_id: str,
        sources: list[UploadSource],
        note_to_brand: str | None = None,
        external_links: str | None = None,
        on_progress: FileProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Delivery:
        """
        Validate, upload and persist a delivery for an order.

        Raises:
            OrderNotFoundError: If the order is missing or not the creator's
            OrderAccessDeniedError: If the user is the brand, not the creator
            InvalidOrderStateError: If the order hasn't been paid
        """
        order = self.orders.get_order(order_id, creator_id)
        if order.creator_id != creator_id:
            raise OrderAccessDeniedError(order_id, "creator")
        if order.status not in DELIVERABLE_STATUSES:
            raise InvalidOrderStateError(
                order_id,
                order.status.value,
                [s.value for s in DELIVERABLE_STATUSES],
            )

        self.validate_files(order_id, sources)
        files = await self.upload_delivery_files(order_id, sources, on_progress, cancel_token)

        delivery = Delivery(
            order_id=order_id,
            files=files,
            note_to_brand=(note_to_brand or "").strip() or None,
            external_links=(external_links or "").strip() or None,
            delivered_at=utc_now(),
        )
        return self.save_order_delivery(order_id, delivery)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _delivery_row(self, delivery: Delivery) -> dict[str, Any]:
        return {
            **delivery.model_dump(mode="json"),
            "slot": collections.DELIVERY_SLOT_LATEST,
            "recorded_at": utc_now().isoformat(),
        }

    def _mark_order_delivered(self, order_id: str, delivery: Delivery) -> None:
        self.orders.update_status(
            order_id,
            OrderStatus.DELIVERED,
            delivered_at=delivery.delivered_at.isoformat(),
            has_delivery=True,
        )

    def _set_state(self, order_id: str, state: DeliveryState) -> None:
        self.store.update(
            collections.ORDER_DELIVERIES,
            {"order_id": order_id, "slot": collections.DELIVERY_SLOT_LATEST},
            {"state": state.value},
        )
