#!/usr/bin/env python3
# =============================================================================
# scripts/start_worker.py - Celery Worker Entry Point
# =============================================================================
# Starts a Celery worker with an embedded beat scheduler, so one process runs
# the delivery reconciler and the Instagram token refresh.
#
# Usage:
#   python scripts/start_worker.py
#
# Prerequisites:
#   - Redis must be running
#   - Environment variables must be set (.env file)
# =============================================================================

import logging

from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def main():
    logger.info("Starting Lumo worker with beat scheduler")
    celery_app.worker_main([
        "worker",
        "--beat",
        "--loglevel=info",
        "--concurrency=2",
    ])


if __name__ == "__main__":
    main()
