import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from app.api import require_admin, routes_admin, routes_booking, routes_health, routes_payment
from app.core.config import Settings, settings as default_settings
from app.core.errors import TowingError
from app.core.logging import configure_logging
from app.integrations.maps import DistanceMatrixClient, RouteClient
from app.integrations.notifications import AdminNotifier, LoggingAdminNotifier, WebhookAdminNotifier
from app.integrations.payment import MockPaymentGateway, PaymentGateway, StripePaymentGateway
from app.services.retry import RetryPolicy
from app.storage.repository import InMemoryRepository, RecordStore
from app.storage.sql import SqlRepository

logger = logging.getLogger("app.main")


def build_repository(settings: Settings) -> RecordStore:
    if settings.storage_backend.lower() == "sql":
        return SqlRepository(database_url=settings.database_url)
    return InMemoryRepository()


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_provider.lower() == "stripe":
        return StripePaymentGateway(settings.stripe_api_key, currency=settings.stripe_currency)
    return MockPaymentGateway()


def build_notifier(settings: Settings) -> AdminNotifier:
    if settings.admin_webhook_url:
        return WebhookAdminNotifier(settings.admin_webhook_url, timeout=settings.notification_timeout_seconds)
    return LoggingAdminNotifier()


def build_route_client(settings: Settings) -> RouteClient | None:
    if settings.google_maps_api_key:
        return DistanceMatrixClient(settings.google_maps_api_key)
    return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    repository = app.state.repository
    if isinstance(repository, SqlRepository):
        await repository.create_all()
    yield
    if isinstance(repository, SqlRepository):
        await repository.dispose()


async def handle_towing_error(request: Request, exc: TowingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Settings | None = None,
    repository: RecordStore | None = None,
    payment_gateway: PaymentGateway | None = None,
    notifier: AdminNotifier | None = None,
    route_client: RouteClient | None = None,
    retry_policy: RetryPolicy | None = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level.upper())
    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TowingError, handle_towing_error)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_booking.router, prefix="/bookings", tags=["booking"])
    app.include_router(routes_payment.router, prefix="/payments", tags=["payment"])
    app.include_router(
        routes_admin.router,
        prefix="/admin",
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )

    # Collaborators live on app.state for the dependencies in app.api
    app.state.settings = settings
    app.state.repository = repository or build_repository(settings)
    app.state.payment_gateway = payment_gateway or build_payment_gateway(settings)
    app.state.notifier = notifier or build_notifier(settings)
    app.state.route_client = route_client if route_client is not None else build_route_client(settings)
    app.state.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
