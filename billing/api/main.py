"""FastAPI application exposing billing admin actions.

Endpoints mirror the admin panel actions:
- Health and readiness checks for Kubernetes
- Invoice PDF generation and currency conversion
- Soft delete / restore of invoices
- County reference-data export (queued when the worker is enabled)
- Per-user notification inbox
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from billing import operations
from billing.api import metrics
from billing.db.session import session_scope
from billing.documents.builder import SavedDocument
from billing.notifications.service import NotificationService
from billing.shared.config import get_settings
from billing.shared.context import BillingContext, create_context
from billing.shared.errors import BillingError, ErrorCode

logger = logging.getLogger(__name__)

settings = get_settings()

ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVOICE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CURRENCY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RATE_PROVIDER_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.RATE_DATA_MALFORMED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.CONFIGURATION_MISSING: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INVOICE_ITEMS_MALFORMED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.RENDERING_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DOCUMENT_STORAGE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_arq_pool: Any = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Resolve configuration once at startup."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app.state.billing = create_context(settings)
    yield
    app.state.billing.close()


app = FastAPI(
    title="Billing Admin",
    description="Invoice documents, currency conversion and reference-data exports",
    version=settings.service_version,
    lifespan=lifespan,
)


def get_context(request: Request) -> BillingContext:
    """Dependency returning the process-wide BillingContext."""
    context: BillingContext = request.app.state.billing
    return context


async def get_arq_pool() -> Any:
    """Get or create the arq Redis pool."""
    global _arq_pool
    if _arq_pool is None:
        from arq import create_pool
        from arq.connections import RedisSettings

        _arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    return _arq_pool


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(f"{request.method} {request.url.path} failed: {exc.code.value} {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class ConvertCurrencyRequest(BaseModel):
    """Currency conversion request."""

    currency_id: int = Field(..., description="Target currency id", gt=0)


class ExportRequest(BaseModel):
    """Export request."""

    user_id: int = Field(..., description="User requesting the export", gt=0)


class QueuedJobResponse(BaseModel):
    """Background job acknowledgement."""

    job_id: str
    status: str


class NotificationResponse(BaseModel):
    """Inbox entry."""

    id: int
    title: str
    body: str | None
    icon: str | None
    status: str
    actions: list[dict[str, Any]]
    read_at: datetime | None
    created_at: datetime


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check(context: BillingContext = Depends(get_context)) -> ReadinessResponse:  # noqa: B008
    """Readiness check: storage backend must be usable."""
    return ReadinessResponse(ready=context.storage is not None and context.storage.health_check())


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.get("/api/v1/invoices", response_model=list[operations.InvoiceView], tags=["Invoices"])
def list_invoices(
    with_trashed: bool = False,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> list[operations.InvoiceView]:
    return operations.list_invoices(context, with_trashed=with_trashed)


@app.get("/api/v1/invoices/{invoice_id}", response_model=operations.InvoiceView, tags=["Invoices"])
def get_invoice(
    invoice_id: int,
    with_trashed: bool = False,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> operations.InvoiceView:
    return operations.describe_invoice(context, invoice_id, with_trashed=with_trashed)


@app.post("/api/v1/invoices/{invoice_id}/pdf", response_model=SavedDocument, tags=["Invoices"])
def save_invoice_pdf(
    invoice_id: int,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> SavedDocument:
    """Render and store the invoice PDF, then notify every administrator.

    Returns:
        Stored document details and the notified administrators

    Raises:
        404 if the invoice does not exist, 500 if rendering or storage fails
    """
    return operations.save_invoice_pdf(context, invoice_id)


@app.post(
    "/api/v1/invoices/{invoice_id}/convert-currency",
    response_model=operations.InvoiceView,
    tags=["Invoices"],
)
def convert_currency(
    invoice_id: int,
    request: ConvertCurrencyRequest,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> operations.InvoiceView:
    """Convert an invoice to another currency at the provider's latest rate.

    Amounts round up to the target currency's minor unit. Converting again
    applies the new rate to the already converted amounts.

    Raises:
        404 for unknown invoice or currency, 502 if the rate provider fails
    """
    return operations.convert_invoice_currency(context, invoice_id, request.currency_id)


@app.delete("/api/v1/invoices/{invoice_id}", response_model=operations.InvoiceView, tags=["Invoices"])
def delete_invoice(
    invoice_id: int,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> operations.InvoiceView:
    """Soft-delete an invoice. It stays restorable."""
    return operations.soft_delete_invoice(context, invoice_id)


@app.post(
    "/api/v1/invoices/{invoice_id}/restore",
    response_model=operations.InvoiceView,
    tags=["Invoices"],
)
def restore_invoice(
    invoice_id: int,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> operations.InvoiceView:
    return operations.restore_invoice(context, invoice_id)


@app.post("/api/v1/exports/counties", tags=["Exports"])
async def export_counties(
    request: ExportRequest,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> Response:
    """Export the county dataset.

    With the queue enabled the export is handed to the worker and 202 is
    returned with the job id; otherwise it runs inline and the summary is
    returned.
    """
    if settings.queue_enabled:
        job_id = str(uuid.uuid4())
        pool = await get_arq_pool()
        await pool.enqueue_job("export_counties", job_id, request.user_id, _job_id=job_id)
        logger.info(f"Queued county export {job_id} for user {request.user_id}")
        body = QueuedJobResponse(job_id=job_id, status="queued")
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body.model_dump())

    export = operations.export_counties(context, request.user_id)
    return JSONResponse(status_code=status.HTTP_200_OK, content=export.model_dump())


@app.get(
    "/api/v1/users/{user_id}/notifications",
    response_model=list[NotificationResponse],
    tags=["Notifications"],
)
def list_notifications(
    user_id: int,
    unread_only: bool = False,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> list[NotificationResponse]:
    with session_scope(context.session_factory) as session:
        inbox = NotificationService(session).inbox(user_id, unread_only=unread_only)
        return [
            NotificationResponse(
                id=n.id,
                title=n.title,
                body=n.body,
                icon=n.icon,
                status=n.status,
                actions=n.actions,
                read_at=n.read_at,
                created_at=n.created_at,
            )
            for n in inbox
        ]


@app.post(
    "/api/v1/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    tags=["Notifications"],
)
def mark_notification_read(
    notification_id: int,
    context: BillingContext = Depends(get_context),  # noqa: B008
) -> NotificationResponse:
    with session_scope(context.session_factory) as session:
        notification = NotificationService(session).mark_as_read(notification_id)
        if notification is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Notification {notification_id} not found",
            )
        return NotificationResponse(
            id=notification.id,
            title=notification.title,
            body=notification.body,
            icon=notification.icon,
            status=notification.status,
            actions=notification.actions,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )
