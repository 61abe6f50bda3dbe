import time

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from identity_lifecycle.configs.logging_config import get_logger, setup_logging
from identity_lifecycle.configs.settings import Settings, get_settings
from identity_lifecycle.errors import AppError, CapacityExceededError
from identity_lifecycle.identity.cognito_adapter import CognitoIdentityProvider
from identity_lifecycle.identity.provider import IdentityProviderAdapter
from identity_lifecycle.repositories.kv_store import KeyValueStore
from identity_lifecycle.repositories.mongo import get_mongo_client, get_mongo_db
from identity_lifecycle.repositories.mongo_kv_store import MongoKeyValueStore
from identity_lifecycle.repositories.redis_client import redis_client
from identity_lifecycle.routers.access_router import router as access_router
from identity_lifecycle.routers.health_router import router as health_router
from identity_lifecycle.routers.user_router import router as user_router
from identity_lifecycle.services.access_resolver import AccessResolver
from identity_lifecycle.services.capacity_gate import LicenseCapacityGate
from identity_lifecycle.services.lifecycle_events import LifecycleEventPublisher
from identity_lifecycle.services.permission_resolver import PermissionResolver
from identity_lifecycle.services.reconciliation import ReconciliationEngine
from identity_lifecycle.services.reconciliation_scheduler import ReconciliationScheduler
from identity_lifecycle.services.user_lifecycle import UserLifecycleOrchestrator
from identity_lifecycle.utils.response import failure
from identity_lifecycle.webclient.notification_client import NotificationClient
from identity_lifecycle.webclient.oauth2 import OAuth2HttpClient, OAuth2TokenProvider

log = get_logger(__name__)


def wire_services(
    app: FastAPI,
    *,
    settings: Settings,
    store: KeyValueStore,
    identity_provider: IdentityProviderAdapter,
    notifier: NotificationClient,
    events: LifecycleEventPublisher,
) -> None:
    """Build the service graph on app.state; routers read it from there."""
    capacity_gate = LicenseCapacityGate(store)
    app.state.settings = settings
    app.state.store = store
    app.state.capacity_gate = capacity_gate
    app.state.user_lifecycle = UserLifecycleOrchestrator(
        store=store,
        capacity_gate=capacity_gate,
        identity_provider=identity_provider,
        notifier=notifier,
        events=events,
        batch_size=settings.batch_write_size,
    )
    app.state.reconciliation_engine = ReconciliationEngine(
        store=store,
        identity_provider=identity_provider,
        notifier=notifier,
        events=events,
    )
    app.state.permission_resolver = PermissionResolver(store)
    app.state.access_resolver = AccessResolver(store, settings)


def create_app() -> FastAPI:
    app = FastAPI(title="identity_lifecycle", version="0.1.0")
    settings: Settings = get_settings()
    # Normalize CORS origins from settings (.env can provide a comma-separated string)
    raw_origins = settings.CORS_ORIGINS
    if isinstance(raw_origins, str):
        origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    elif isinstance(raw_origins, (list, tuple, set)):
        origins = list(raw_origins)
    else:
        origins = []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = time.perf_counter()
        method = request.method
        path = request.url.path
        request_id = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")

        log.info("request.start method=%s path=%s request_id=%s", method, path, request_id)
        status_code = "unknown"
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log.info(
                "request.end method=%s path=%s status=%s request_id=%s elapsed_ms=%s",
                method,
                path,
                status_code,
                request_id,
                elapsed_ms,
            )
        return response

    app.include_router(health_router)
    app.include_router(user_router)
    app.include_router(access_router)

    @app.exception_handler(CapacityExceededError)
    async def capacity_error_handler(_: Request, exc: CapacityExceededError) -> JSONResponse:
        log.info("request.error type=capacity_exceeded code=%s message=%s", exc.code, exc.message)
        extra = {"code": exc.code}
        if exc.capacity is not None:
            extra["capacity"] = exc.capacity.model_dump(by_alias=True, mode="json")
        return JSONResponse(status_code=exc.http_status, content=failure(exc.message, **extra))

    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
        log.info("request.error type=app_error status=%s message=%s", exc.http_status, exc.message)
        return JSONResponse(status_code=exc.http_status, content=failure(exc.message))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error: %s", str(exc))
        return JSONResponse(status_code=500, content=failure("internal server error"))

    @app.on_event("startup")
    async def startup() -> None:
        setup_logging()
        settings: Settings = get_settings()

        mongo_client = get_mongo_client(settings)
        mongo_db = get_mongo_db(mongo_client, settings)
        app.state.mongo_client = mongo_client

        store = MongoKeyValueStore(mongo_db, settings)
        log.info("startup.ensure_indexes begin")
        await store.ensure_indexes()
        log.info("startup.ensure_indexes done")

        await redis_client.connect(settings.redis_url)
        events = LifecycleEventPublisher(redis_client.client, settings.redis_stream_users)

        http_client = None
        if settings.notification_base_url:
            http_client = OAuth2HttpClient(
                token_provider=OAuth2TokenProvider.from_settings(settings),
                client=httpx.AsyncClient(timeout=10.0),
            )
        app.state.http_client = http_client
        notifier = NotificationClient(settings.notification_base_url, http_client)

        wire_services(
            app,
            settings=settings,
            store=store,
            identity_provider=CognitoIdentityProvider(settings),
            notifier=notifier,
            events=events,
        )

        if settings.reconciliation_enabled:
            scheduler = ReconciliationScheduler(
                app.state.reconciliation_engine,
                interval_seconds=settings.reconciliation_interval_seconds,
                dry_run=settings.reconciliation_dry_run,
            )
            scheduler.start()
            app.state.reconciliation_scheduler = scheduler
        else:
            log.info("startup.reconciliation_scheduler disabled")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("shutdown.begin")
        scheduler = getattr(app.state, "reconciliation_scheduler", None)
        if scheduler is not None:
            await scheduler.stop()
        await redis_client.close()
        http_client = getattr(app.state, "http_client", None)
        if http_client is not None:
            await http_client.aclose()
        mongo_client = getattr(app.state, "mongo_client", None)
        if mongo_client is not None:
            mongo_client.close()
        log.info("shutdown.done")

    return app


app = create_app()
