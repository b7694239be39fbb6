"""Async task definitions for background billing jobs.

Uses arq (async Redis queue). Exports and PDF generation can be queued from
the API so the request returns immediately; the requesting user is notified
through their inbox when the job finishes.

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import logging
from datetime import UTC, datetime
from typing import Any

from arq.connections import RedisSettings
from pydantic import BaseModel

from billing import operations
from billing.shared.config import Settings, get_settings
from billing.shared.context import BillingContext, create_context
from billing.shared.errors import BillingError

logger = logging.getLogger(__name__)

JOB_TTL_SECONDS = 86400


class JobResult(BaseModel):
    """Result of a background job.

    Attributes:
        job_id: Unique job identifier
        kind: Job type (export_counties, save_invoice_pdf)
        status: Job status (processing, completed, failed)
        result: Operation output (if completed)
        error: Error payload (if failed)
        created_at: Job creation timestamp
        completed_at: Job completion timestamp
    """

    job_id: str
    kind: str
    status: str
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None
    created_at: str
    completed_at: str | None = None


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def _run_job(ctx: dict[str, Any], job_id: str, kind: str, call: Any) -> dict[str, Any]:
    redis = ctx["redis"]
    result = JobResult(job_id=job_id, kind=kind, status="processing", created_at=_now())
    await redis.set(f"job:{job_id}", result.model_dump_json(), ex=JOB_TTL_SECONDS)

    try:
        output = call()
        result.status = "completed"
        result.result = output.model_dump(mode="json")
    except BillingError as e:
        logger.error(f"Job {job_id} ({kind}) failed: {e.message}")
        result.status = "failed"
        result.error = e.to_dict()
    except Exception as e:
        logger.exception(f"Job {job_id} ({kind}) failed with error: {e}")
        result.status = "failed"
        result.error = {"error": "INTERNAL_ERROR", "message": str(e)}

    result.completed_at = _now()
    await redis.set(f"job:{job_id}", result.model_dump_json(), ex=JOB_TTL_SECONDS)
    logger.info(f"Job {job_id} completed with status: {result.status}")
    return result.model_dump()


async def export_counties(ctx: dict[str, Any], job_id: str, user_id: int) -> dict[str, Any]:
    """Export the county dataset for ``user_id`` in the background."""
    billing: BillingContext = ctx["billing"]
    return await _run_job(
        ctx, job_id, "export_counties", lambda: operations.export_counties(billing, user_id)
    )


async def save_invoice_pdf(ctx: dict[str, Any], job_id: str, invoice_id: int) -> dict[str, Any]:
    """Render and store an invoice PDF in the background."""
    billing: BillingContext = ctx["billing"]
    return await _run_job(
        ctx, job_id, "save_invoice_pdf", lambda: operations.save_invoice_pdf(billing, invoice_id)
    )


async def startup(ctx: dict[str, Any]) -> None:
    """Resolve the billing context once per worker process."""
    ctx["billing"] = create_context(get_settings())
    logger.info("Billing worker ready")


async def shutdown(ctx: dict[str, Any]) -> None:
    billing: BillingContext | None = ctx.get("billing")
    if billing is not None:
        billing.close()
    logger.info("Billing worker stopped")


class WorkerSettings:
    """arq worker settings. Limits and Redis DSN are applied by ``configure_worker``."""

    functions = [export_counties, save_invoice_pdf]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings: RedisSettings | None = None
    max_jobs = 10
    job_timeout = 300

    @classmethod
    def get_redis_settings(cls, settings: Settings | None = None) -> RedisSettings:
        return RedisSettings.from_dsn((settings or get_settings()).redis_url)
