# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# Celery app, configuration and the periodic maintenance tasks.
#
# Components:
# - celery_app.py: Celery application and lifecycle logging
# - config.py: Broker settings and beat schedule
# - tasks.py: reconcile_deliveries, refresh_instagram_tokens
#
# Usage:
#   celery -A workers.celery_app worker --beat --loglevel=info
#
#   # Run a sweep by hand
#   from workers.tasks import reconcile_deliveries
#   reconcile_deliveries.delay(grace_seconds=0)
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
