# =============================================================================
# tests/test_tasks.py - Celery Task Tests
# =============================================================================
# Tasks run in-process with Task.apply(); no broker is needed. The worker's
# service graph is replaced with the in-memory one.
#
# Run with: pytest tests/test_tasks.py -v
# =============================================================================

from datetime import timedelta

import pytest

from lib.utils import utc_now
from tests.conftest import BRAND_ID, CREATOR_ID
from workers import tasks
from workers.config import CeleryConfig


@pytest.fixture(autouse=True)
def worker_services(monkeypatch, services):
    monkeypatch.setattr(tasks, "_services", services)
    return services


class TestReconcileTask:
    def test_commits_recorded_delivery(self, store):
        store.seed("orders", {
            "id": "offer_1",
            "brand_id": BRAND_ID,
            "creator_id": CREATOR_ID,
            "amount": 100.0,
            "status": "paid",
        })
        store.seed("order_deliveries", {
            "order_id": "offer_1",
            "slot": "latest",
            "state": "recorded",
            "files": [],
            "delivered_at": utc_now().isoformat(),
            "recorded_at": (utc_now() - timedelta(hours=1)).isoformat(),
        })

        result = tasks.reconcile_deliveries.apply(kwargs={"grace_seconds": 60}).get()

        assert result == {"committed": 1}
        assert store.get("orders", "offer_1")["status"] == "delivered"
        assert store.all("order_deliveries")[0]["state"] == "committed"

    def test_nothing_to_reconcile(self):
        assert tasks.reconcile_deliveries.apply().get() == {"committed": 0}


class TestRefreshTokensTask:
    def test_skipped_without_instagram(self, monkeypatch, worker_services, settings):
        monkeypatch.setattr(
            worker_services,
            "settings",
            settings.model_copy(update={"INSTAGRAM_APP_ID": "", "INSTAGRAM_APP_SECRET": ""}),
        )

        assert tasks.refresh_instagram_tokens.apply().get() == {"refreshed": 0}

    def test_runs_refresh(self):
        assert tasks.refresh_instagram_tokens.apply(kwargs={"within_days": 3}).get() == {"refreshed": 0}


class TestBeatSchedule:
    def test_periodic_tasks_registered(self):
        schedule = CeleryConfig.beat_schedule

        assert schedule["reconcile-deliveries"]["task"] == "workers.tasks.reconcile_deliveries"
        assert schedule["refresh-instagram-tokens"]["task"] == "workers.tasks.refresh_instagram_tokens"
