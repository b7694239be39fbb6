"""Entry point for the billing background worker.

Run with: python -m billing.queue.worker
"""

import logging

from arq import run_worker

from billing.queue.tasks import WorkerSettings
from billing.shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_worker(settings: Settings) -> type[WorkerSettings]:
    """Apply queue limits and the Redis DSN from ``settings`` to WorkerSettings."""
    WorkerSettings.redis_settings = WorkerSettings.get_redis_settings(settings)
    WorkerSettings.max_jobs = settings.queue_max_jobs
    WorkerSettings.job_timeout = settings.queue_job_timeout
    return WorkerSettings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    worker_settings = configure_worker(settings)
    logger.info(
        f"Billing worker consuming {settings.redis_url} "
        f"(max_jobs={settings.queue_max_jobs}, job_timeout={settings.queue_job_timeout}s)"
    )
    run_worker(worker_settings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
