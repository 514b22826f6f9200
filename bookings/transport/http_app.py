# bookings/transport/http_app.py
"""
HTTP adapter for the booking core.

Every route parses its body, calls one orchestrator use case and maps the
``BookingResult`` to JSON. Authentication lives in front of this service;
the acting user id travels in the request body.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bookings.config import settings, validate_or_warn
from bookings.core.errors import BookingResult
from bookings.core.orchestrator import (
    BookingConfirmation,
    BookingOrchestrator,
    BookingRequest,
    JobUpdate,
    build_orchestrator,
)
from bookings.infra.logging_config import get_logger, setup_logging
from bookings.infra.metrics import get_metrics_collector
from bookings.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from bookings.transport.schemas import AcceptIn, ActorIn, BookingIn, ConfirmIn, UpdateIn

setup_logging(level=settings.log_level, use_json=settings.is_production)

logger = get_logger(__name__)


def _respond(result: BookingResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.to_dict())


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return request.app.state.orchestrator


async def _build_postgres_orchestrator() -> BookingOrchestrator:
    from bookings.infra.clock import SystemClock
    from bookings.infra.db_async import init_pool
    from bookings.infra.notification_channels import build_channels
    from bookings.infra.pg_booking_store_async import AsyncPostgresBookingStore

    await init_pool(settings.database_url, min_size=settings.pg_pool_min, max_size=settings.pg_pool_max)
    logger.info("Database pool initialized")

    clock = SystemClock()
    store = AsyncPostgresBookingStore(translator_role_id=settings.translator_role_id)
    mailer, sms, push = build_channels(settings, clock=clock)
    return build_orchestrator(
        settings, store=store, towns=store, mailer=mailer, sms=sms, push=push, clock=clock,
    )


def create_app(orchestrator: BookingOrchestrator | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    With no ``orchestrator`` the lifespan wires the Postgres store and the
    configured channels; tests pass one built on the in-memory store.
    """

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        logger.info(f"Starting application: env={settings.app_env}")
        owns_pool = orchestrator is None
        if owns_pool:
            validate_or_warn(settings)
            fastapi_app.state.orchestrator = await _build_postgres_orchestrator()

        logger.info("Application startup complete")
        yield

        logger.info("Shutting down application")
        await fastapi_app.state.orchestrator.notifier.drain()

        from bookings.infra.http_client import close_all_sessions
        await close_all_sessions()

        if owns_pool:
            from bookings.infra.db_async import close_pool
            await close_pool()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Interpreter Bookings",
        description="Booking core for interpreter assignments",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        loc = [str(part) for part in first.get("loc", ()) if part != "body"]
        return JSONResponse(
            status_code=400,
            content={
                "status": "fail",
                "code": "validation_failed",
                "message": first.get("msg", "Invalid request"),
                "field_name": loc[-1] if loc else None,
            },
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    @app.post("/bookings")
    async def create_booking(body: BookingIn, request: Request):
        request_data = BookingRequest(**body.model_dump(exclude={"user_id"}))
        return _respond(await get_orchestrator(request).create_booking(body.user_id, request_data))

    @app.post("/bookings/{job_id}/confirm")
    async def confirm_booking(job_id: int, body: ConfirmIn, request: Request):
        confirmation = BookingConfirmation(**body.model_dump())
        return _respond(await get_orchestrator(request).confirm_booking(job_id, confirmation))

    @app.post("/bookings/{job_id}/accept")
    async def accept_booking(job_id: int, body: AcceptIn, request: Request):
        orchestrator_ = get_orchestrator(request)
        if body.push_customer:
            result = await orchestrator_.accept_job_with_id(job_id, body.translator_id)
        else:
            result = await orchestrator_.accept_job(job_id, body.translator_id)
        return _respond(result)

    @app.put("/bookings/{job_id}")
    async def update_booking(job_id: int, body: UpdateIn, request: Request):
        update = JobUpdate(**body.model_dump(exclude={"user_id"}))
        return _respond(await get_orchestrator(request).update_job(job_id, update, body.user_id))

    @app.post("/bookings/{job_id}/cancel")
    async def cancel_booking(job_id: int, body: ActorIn, request: Request):
        return _respond(await get_orchestrator(request).cancel_job(job_id, body.user_id))

    @app.post("/bookings/{job_id}/end")
    async def end_booking(job_id: int, body: ActorIn, request: Request):
        return _respond(await get_orchestrator(request).end_job(job_id, body.user_id))

    @app.post("/bookings/{job_id}/customer-not-call")
    async def customer_not_call(job_id: int, request: Request):
        return _respond(await get_orchestrator(request).customer_not_call(job_id))

    @app.post("/bookings/{job_id}/reopen")
    async def reopen_booking(job_id: int, body: ActorIn, request: Request):
        return _respond(await get_orchestrator(request).reopen(job_id, body.user_id))

    @app.post("/bookings/{job_id}/ignore-expiring")
    async def ignore_expiring(job_id: int, request: Request):
        return _respond(await get_orchestrator(request).ignore_expiring(job_id))

    @app.post("/bookings/{job_id}/ignore-expired")
    async def ignore_expired(job_id: int, request: Request):
        return _respond(await get_orchestrator(request).ignore_expired(job_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @app.get("/translators/{translator_id}/potential-jobs")
    async def potential_jobs(translator_id: int, request: Request):
        return _respond(await get_orchestrator(request).potential_jobs(translator_id))

    @app.get("/users/{user_id}/jobs")
    async def users_jobs(user_id: int, request: Request):
        return _respond(await get_orchestrator(request).users_jobs(user_id))

    @app.get("/users/{user_id}/jobs/history")
    async def users_jobs_history(user_id: int, request: Request, page: int = 1):
        return _respond(await get_orchestrator(request).users_jobs_history(user_id, page))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.get("/metrics")
    def metrics():
        return get_metrics_collector().get_metrics()

    return app


app = create_app()
