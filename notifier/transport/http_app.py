# notifier/transport/http_app.py
"""
HTTP application.

Security layers:
1. Public: health checks
2. Webhook token: order-lifecycle notification webhooks
3. Admin token: history, stats, metrics, on-demand reminder passes

Run:
    uvicorn notifier.transport.http_app:app
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from notifier.config import settings
from notifier.core.errors import NotifierError
from notifier.core.service import NotificationService, build_notification_service
from notifier.infra.db_async import close_pool, init_pool, pool_initialized
from notifier.infra.delivery_client import TelegramDeliveryClient
from notifier.infra.http_client import close_all_sessions
from notifier.infra.logging_config import get_logger, setup_logging
from notifier.infra.metrics import get_metrics_collector
from notifier.infra.pg_notification_repo_async import AsyncPostgresNotificationRepository
from notifier.infra.pg_record_store_async import AsyncPostgresRecordStore
from notifier.infra.schema_validator import validate_schema_version
from notifier.transport.schemas import (
    CloseOrderReminderIn,
    DateChangeIn,
    MasterAssignedIn,
    MasterReassignedIn,
    ModernClosingReminderIn,
    NewOrderIn,
    OrderAcceptedIn,
    OrderClosedIn,
    OrderInModernIn,
    OrderRejectionIn,
    SendNotificationIn,
    WebhookIn,
)
from notifier.transport.security import (
    check_configured_tokens,
    require_admin_auth,
    sanitize_error_message,
    verify_webhook_token,
)
from notifier.transport.telegram_sender import get_me

setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_service(request: Request) -> NotificationService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""
    logger.info(f"Starting order notifier: env={settings.app_env}, run_mode={settings.run_mode}")

    if settings.is_production:
        missing = settings.validate_required_for_production()
        if missing:
            logger.critical(f"Missing required production settings: {missing}")
            raise RuntimeError(f"Missing production config: {missing}")

    check_configured_tokens()

    await init_pool()
    logger.info("Database pool initialized")

    # Migrations run separately: python -m notifier.infra.migrate
    try:
        await validate_schema_version()
    except Exception:
        logger.critical(
            "Schema validation failed. Run migrations first: python -m notifier.infra.migrate",
            exc_info=True
        )
        await close_pool()
        raise

    service = build_notification_service(
        AsyncPostgresRecordStore(),
        AsyncPostgresNotificationRepository(),
        TelegramDeliveryClient(),
        settings,
    )
    fastapi_app.state.service = service

    if settings.telegram_enabled:
        bot = await get_me()
        if bot:
            logger.info(f"Telegram bot: @{bot.get('username')} (id={bot.get('id')})")
        else:
            logger.warning("Telegram getMe failed: check TELEGRAM_BOT_TOKEN")
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set: deliveries will fail")

    scheduler_started = False
    if settings.run_mode in ("all", "scheduler") and settings.reminders_enabled:
        await service.scheduler.start()
        scheduler_started = True
    else:
        logger.info(
            f"Reminder scheduler skipped (run_mode={settings.run_mode}, enabled={settings.reminders_enabled})"
        )

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    if scheduler_started:
        await service.scheduler.stop()
    await close_all_sessions()
    await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="Order Notifier",
    description="Telegram notifications and reminders for service orders",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(NotifierError)
async def notifier_error_handler(request: Request, exc: NotifierError):
    if exc.status_code >= 500:
        logger.error(f"Notifier error: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": sanitize_error_message(exc, settings.is_production)},
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/notifications/health")
def notifications_health():
    return {
        "success": True,
        "message": "Notifications module is healthy",
        "database": "connected" if pool_initialized() else "not_initialized",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ============================================================================
# WEBHOOKS (webhook token)
# ============================================================================

async def _notify(request: Request, body, service: NotificationService) -> dict:
    verify_webhook_token(request, body.token)
    event = body.to_event()
    logger.info(f"Webhook {event.kind_value} for order #{event.order_id}")
    result = await service.notify(event)
    response = result.to_dict()
    if result.status.value == "unknown_template":
        response["message"] = result.outcomes[0].error
    elif result.status.value == "no_recipients":
        response["message"] = "No recipients configured for this notification"
    elif result.status.value == "failed":
        response["message"] = "Notification delivery failed"
    else:
        response["message"] = "Notifications processed"
    return response


@app.post("/notifications/send")
async def send_notification(
    body: SendNotificationIn,
    request: Request,
    service: NotificationService = Depends(get_service),
):
    return await _notify(request, body, service)


def _register_webhook(path: str, model: type[WebhookIn]) -> None:
    async def endpoint(
        body: model,
        request: Request,
        service: NotificationService = Depends(get_service),
    ):
        return await _notify(request, body, service)

    endpoint.__name__ = f"webhook_{model.KIND.value}"
    app.post(path, name=model.KIND.value)(endpoint)


for _path, _model in (
    ("/notifications/new-order", NewOrderIn),
    ("/notifications/date-change", DateChangeIn),
    ("/notifications/order-rejection", OrderRejectionIn),
    ("/notifications/master-assigned", MasterAssignedIn),
    ("/notifications/master-reassigned", MasterReassignedIn),
    ("/notifications/order-accepted", OrderAcceptedIn),
    ("/notifications/order-closed", OrderClosedIn),
    ("/notifications/order-in-modern", OrderInModernIn),
    ("/notifications/close-order-reminder", CloseOrderReminderIn),
    ("/notifications/modern-closing-reminder", ModernClosingReminderIn),
):
    _register_webhook(_path, _model)


# ============================================================================
# ADMIN ENDPOINTS (admin token)
# ============================================================================

@app.get("/notifications/history", dependencies=[Depends(require_admin_auth)])
async def notifications_history(
    type: Optional[str] = None,
    order_id: Optional[int] = Query(default=None, alias="orderId"),
    recipient_type: Optional[str] = Query(default=None, alias="recipientType"),
    success: Optional[bool] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: NotificationService = Depends(get_service),
):
    history = await service.history.list_history(
        kind=type,
        order_id=order_id,
        recipient_type=recipient_type,
        success=success,
        limit=limit,
        offset=offset,
    )
    return {"success": True, "data": history}


@app.get("/notifications/stats", dependencies=[Depends(require_admin_auth)])
async def notifications_stats(
    since: Optional[datetime] = None,
    service: NotificationService = Depends(get_service),
):
    return {"success": True, "data": await service.history.stats(since=since)}


@app.post("/reminders/run", dependencies=[Depends(require_admin_auth)])
async def reminders_run(service: NotificationService = Depends(get_service)):
    reports = await service.scheduler.run_all()
    return {
        "success": True,
        "message": "Reminder jobs executed",
        "data": [r.to_dict() for r in reports],
    }


@app.post("/reminders/close-orders", dependencies=[Depends(require_admin_auth)])
async def reminders_close_orders(service: NotificationService = Depends(get_service)):
    report = await service.scheduler.run_close_order_pass()
    return {"success": True, "data": report.to_dict()}


@app.post("/reminders/modern", dependencies=[Depends(require_admin_auth)])
async def reminders_modern(service: NotificationService = Depends(get_service)):
    report = await service.scheduler.run_modern_closing_pass()
    return {"success": True, "data": report.to_dict()}


@app.get("/metrics", dependencies=[Depends(require_admin_auth)])
def metrics():
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return get_metrics_collector().get_metrics()


# ============================================================================
# ENTRYPOINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "notifier.transport.http_app:app",
        host="0.0.0.0",
        port=8080,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,
        server_header=False,
    )
