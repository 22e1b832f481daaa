import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from smsrelay import dispatcher, inbound, registry
from smsrelay.config import settings
from smsrelay.errors import GatewayError
from smsrelay.logging_utils import setup_logging, RequestLoggingMiddleware, log_dispatch_data
from smsrelay.metrics import get_metrics, get_metrics_content_type
from smsrelay.quota import MonthlyQuotaGuard, QuotaGuard
from smsrelay.storage import init_db, check_db_health, get_db, get_stats
from smsrelay.transport import FirebaseTransport, Transport
from smsrelay.webhooks import Notifier, WebhookNotifier
from smsrelay.schemas import (
    AckResponse,
    BulkSendResponse,
    DeviceAttributes,
    DeviceResponse,
    ErrorResponse,
    HealthResponse,
    ReceivedSMSRequest,
    ReceivedSMSResponse,
    SendBulkSMSRequest,
    SendSMSRequest,
    SMSResponse,
    StatsResponse,
    TransportResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="SMS Gateway API",
    description="Send and receive SMS through registered Android devices",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

GATEWAY_PREFIX = "/api/v1/gateway"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or device unavailable"},
    429: {"model": ErrorResponse, "description": "Usage quota exceeded"},
}


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    device_id = request.path_params.get("device_id")
    if device_id:
        log_dispatch_data(request, device_id=device_id, result=type(exc).__name__)

    logger.warning(f"{type(exc).__name__}: {exc.error}")
    body = ErrorResponse(error=exc.error, additional_info=exc.additional_info)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


# =============================================================================
# Dependencies
# =============================================================================

def get_owner_id(x_owner_id: Annotated[str | None, Header(alias="X-Owner-Id")] = None) -> str:
    """Owner the request acts for; authentication happens in front of this service."""
    if not x_owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing owner"
        )
    return x_owner_id


@lru_cache()
def get_transport() -> Transport:
    return FirebaseTransport(settings.FIREBASE_CREDENTIALS_PATH)


def get_quota_guard(db: Session = Depends(get_db)) -> QuotaGuard:
    return MonthlyQuotaGuard(db, settings.QUOTA_MONTHLY_LIMIT)


def get_webhook_notifier() -> Notifier:
    return WebhookNotifier(
        settings.WEBHOOK_URL,
        settings.WEBHOOK_SECRET,
        timeout_seconds=settings.WEBHOOK_TIMEOUT_SECONDS,
    )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. DB is reachable and schema is applied
    2. WEBHOOK_SECRET is set (non-empty)

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.WEBHOOK_SECRET:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="WEBHOOK_SECRET not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Device Routes
# =============================================================================

@app.post(f"{GATEWAY_PREFIX}/devices", response_model=DeviceResponse)
def register_device(
    attributes: DeviceAttributes,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
) -> DeviceResponse:
    """
    Register a device, or re-enable and update it if the owner already
    registered the same model and build id.
    """
    device = registry.register_device(db, owner_id, attributes)
    return DeviceResponse.model_validate(device)


@app.get(f"{GATEWAY_PREFIX}/devices", response_model=list[DeviceResponse])
def list_devices(
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
) -> list[DeviceResponse]:
    devices = registry.list_devices_for_owner(db, owner_id)
    logger.info(f"Listed {len(devices)} devices for owner {owner_id}")
    return [DeviceResponse.model_validate(device) for device in devices]


@app.get(
    f"{GATEWAY_PREFIX}/devices/{{device_id}}",
    response_model=DeviceResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_device(device_id: str, db: Session = Depends(get_db)) -> DeviceResponse:
    return DeviceResponse.model_validate(registry.get_device(db, device_id))


@app.patch(
    f"{GATEWAY_PREFIX}/devices/{{device_id}}",
    response_model=DeviceResponse,
    responses={404: {"model": ErrorResponse}},
)
def update_device(
    device_id: str,
    attributes: DeviceAttributes,
    db: Session = Depends(get_db),
) -> DeviceResponse:
    values = attributes.model_dump(exclude_unset=True, exclude_none=True)
    device = registry.update_device(db, device_id, values)
    return DeviceResponse.model_validate(device)


@app.delete(f"{GATEWAY_PREFIX}/devices/{{device_id}}", response_model=AckResponse)
def delete_device(device_id: str, db: Session = Depends(get_db)) -> AckResponse:
    """
    Acknowledge a device delete. Devices are kept; see registry.delete_device.
    """
    registry.delete_device(db, device_id)
    return AckResponse()


# =============================================================================
# SMS Routes
# =============================================================================

@app.post(
    f"{GATEWAY_PREFIX}/devices/{{device_id}}/send-sms",
    response_model=TransportResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse, "description": "Push delivery failed"}},
)
def send_sms(
    device_id: str,
    body: SendSMSRequest,
    request: Request,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    transport: Transport = Depends(get_transport),
    quota_guard: QuotaGuard = Depends(get_quota_guard),
) -> TransportResponse:
    """
    Send one message to a list of recipients through the device.

    Accepts message/smsBody and recipients/receivers. Succeeds when at least
    one recipient was handed to the device; per-recipient failures are
    reported in the response.
    """
    logger.info(f"Send SMS request for device {device_id}")

    response = dispatcher.send_sms(
        db,
        device_id,
        body,
        transport=transport,
        quota_guard=quota_guard,
        background=background,
    )

    log_dispatch_data(request, device_id=device_id, result="sent")
    return response


@app.post(
    f"{GATEWAY_PREFIX}/devices/{{device_id}}/send-bulk-sms",
    response_model=BulkSendResponse,
    responses=ERROR_RESPONSES,
)
def send_bulk_sms(
    device_id: str,
    body: SendBulkSMSRequest,
    request: Request,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    transport: Transport = Depends(get_transport),
    quota_guard: QuotaGuard = Depends(get_quota_guard),
) -> BulkSendResponse:
    """
    Send several messages, each with its own recipients, as one batch.

    Malformed sub-messages are skipped. success is false when no recipient
    at all was handed to the device.
    """
    logger.info(f"Bulk SMS request for device {device_id}")

    response = dispatcher.send_bulk_sms(
        db,
        device_id,
        body,
        transport=transport,
        quota_guard=quota_guard,
        background=background,
        recipient_limit=settings.BULK_RECIPIENT_LIMIT,
    )

    log_dispatch_data(request, device_id=device_id, result="sent" if response.success else "failed")
    return response


@app.post(
    f"{GATEWAY_PREFIX}/devices/{{device_id}}/receive-sms",
    response_model=SMSResponse,
    responses=ERROR_RESPONSES,
)
def receive_sms(
    device_id: str,
    body: ReceivedSMSRequest,
    request: Request,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    quota_guard: QuotaGuard = Depends(get_quota_guard),
    notifier: Notifier = Depends(get_webhook_notifier),
) -> SMSResponse:
    """
    Record an SMS received by the device and notify the owner's webhook.
    """
    sms = inbound.receive_sms(
        db,
        device_id,
        body,
        quota_guard=quota_guard,
        notifier=notifier,
        background=background,
    )

    log_dispatch_data(request, device_id=device_id, result="received")
    return SMSResponse.model_validate(sms)


@app.get(
    f"{GATEWAY_PREFIX}/devices/{{device_id}}/get-received-sms",
    response_model=list[ReceivedSMSResponse],
    responses=ERROR_RESPONSES,
)
def get_received_sms(device_id: str, db: Session = Depends(get_db)) -> list[ReceivedSMSResponse]:
    """
    Most recent received SMS for the device, newest first.
    """
    messages = inbound.get_received_sms(db, device_id, limit=settings.RECEIVED_SMS_LIMIT)
    return [ReceivedSMSResponse.model_validate(sms) for sms in messages]


# =============================================================================
# Stats Route
# =============================================================================

@app.get(f"{GATEWAY_PREFIX}/stats", response_model=StatsResponse)
def get_statistics(
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
) -> StatsResponse:
    """
    Usage totals across all of the owner's devices.
    """
    stats = get_stats(db, owner_id)
    logger.info(f"GET /stats: {stats['total_device_count']} devices for owner {owner_id}")
    return StatsResponse(**stats)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
