# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Periodic maintenance run by Celery beat:
#
# - reconcile_deliveries: commit deliveries whose order update never landed
# - refresh_instagram_tokens: extend long-lived tokens close to expiry
#
# Each worker process builds its own service graph on first use.
# =============================================================================

import logging
from typing import Any

from celery import shared_task

from app.config import get_settings
from app.dependencies import Services, build_services

logger = logging.getLogger(__name__)

_services: Services | None = None


def get_worker_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services


@shared_task(bind=True, name="workers.tasks.reconcile_deliveries")
def reconcile_deliveries(self, grace_seconds: int | None = None) -> dict[str, Any]:
    """
    Finish delivery writes left in the recorded state.

    Args:
        grace_seconds: Skip deliveries younger than this (default from settings)

    Returns:
        {"committed": <count>}
    """
    committed = get_worker_services().deliveries.reconcile_deliveries(grace_seconds)
    if committed:
        logger.warning(f"Reconciled {committed} deliveries left in recorded state")
    return {"committed": committed}


@shared_task(bind=True, name="workers.tasks.refresh_instagram_tokens")
def refresh_instagram_tokens(self, within_days: int = 7) -> dict[str, Any]:
    """Refresh Instagram tokens expiring within `within_days`."""
    services = get_worker_services()
    if not services.settings.instagram_enabled:
        logger.info("Instagram not configured, skipping token refresh")
        return {"refreshed": 0}
    return {"refreshed": services.instagram.refresh_expiring_tokens(within_days)}
