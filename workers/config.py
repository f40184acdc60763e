# =============================================================================
# workers/config.py - Celery Worker Configuration
# =============================================================================
# Broker, serialization and the beat schedule for periodic maintenance.
# =============================================================================

from celery.schedules import crontab

from app.config import settings


class CeleryConfig:
    """
    Celery configuration settings.

    These are applied to the Celery app via app.config_from_object().
    """

    # -------------------------------------------------------------------------
    # Broker Settings (Redis)
    # -------------------------------------------------------------------------

    broker_url = settings.REDIS_URL
    result_backend = settings.REDIS_URL

    # -------------------------------------------------------------------------
    # Task Settings
    # -------------------------------------------------------------------------

    # Acknowledge after completion so a crashed worker's task is redelivered
    task_acks_late = True
    worker_prefetch_multiplier = 1
    result_expires = 3600

    # Maintenance sweeps are short; anything past this is stuck
    task_time_limit = 300
    task_soft_time_limit = 240

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]

    # -------------------------------------------------------------------------
    # Queues
    # -------------------------------------------------------------------------

    task_default_queue = "default"
    task_routes = {
        "workers.tasks.reconcile_deliveries": {"queue": "default"},
        "workers.tasks.refresh_instagram_tokens": {"queue": "default"},
    }

    # -------------------------------------------------------------------------
    # Beat Schedule
    # -------------------------------------------------------------------------

    beat_schedule = {
        "reconcile-deliveries": {
            "task": "workers.tasks.reconcile_deliveries",
            "schedule": 300.0,
        },
        "refresh-instagram-tokens": {
            "task": "workers.tasks.refresh_instagram_tokens",
            "schedule": crontab(hour=3, minute=0),
        },
    }

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    worker_send_task_events = True
    task_send_sent_event = True

    timezone = "UTC"
    enable_utc = True
