from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from browza.allowlist import AllowlistStore, InMemoryAllowlistStore, normalize_host
from browza.errors import BrokerError, ErrorCode
from browza.jobs import InMemoryJobStore, JobFilter, JobManager, JobMetrics, JobStatus, JobStore
from browza.logging import StructuredLogger, configure_logging
from browza.policy import JobRequest, PolicyEngine
from browza.resilience import StoreGuard, StoreGuardConfig
from browza.storage import (
    PostgresAllowlistStore,
    PostgresJobStore,
    RedisAllowlistStore,
    create_client,
    get_pool,
)

from .middleware import AccessLogMiddleware, BodySizeLimitMiddleware, SanitizeHeadersMiddleware
from .schemas import (
    AllowlistAddRequest,
    AllowlistAdded,
    AllowlistHosts,
    FailureReport,
    JobAccepted,
    JobList,
    JobStatusView,
    JobSummaryView,
    JobView,
    MetricsReport,
    SubmitJobRequest,
)
from .settings import Settings, get_settings, load_env


load_env()


def _guard_config(settings: Settings) -> StoreGuardConfig:
    return StoreGuardConfig(
        timeout_seconds=settings.store_timeout_ms / 1000,
        failure_threshold=settings.breaker_failure_threshold,
        recovery_timeout=settings.breaker_recovery_s,
    )


def create_app(
    settings: Settings | None = None,
    *,
    allowlist: AllowlistStore | None = None,
    job_store: JobStore | None = None,
) -> FastAPI:
    """Build the broker API.

    Stores are built from settings at startup unless passed in explicitly.
    """
    settings = settings or get_settings()
    logger = configure_logging(level=settings.log_level, json_output=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        pool = None
        if settings.needs_postgres and (allowlist is None or job_store is None):
            pool = await get_pool(settings.pg_dsn)

        allowlist_store = allowlist
        if allowlist_store is None:
            if settings.allowlist_backend == "redis":
                allowlist_store = RedisAllowlistStore(create_client(settings.redis_url))
            elif settings.allowlist_backend == "postgres":
                allowlist_store = PostgresAllowlistStore(pool)
            else:
                allowlist_store = InMemoryAllowlistStore()

        jobs = job_store
        if jobs is None:
            jobs = PostgresJobStore(pool) if settings.job_store_backend == "postgres" else InMemoryJobStore()

        config = _guard_config(settings)
        allowlist_guard = StoreGuard("allowlist", config)
        seeded = await allowlist_guard.call(allowlist_store.seed(settings.allowlist_seed), operation="allowlist.seed")

        app.state.allowlist = allowlist_store
        app.state.allowlist_guard = allowlist_guard
        app.state.policy_engine = PolicyEngine(allowlist_store, guard=allowlist_guard, logger=logger)
        app.state.job_manager = JobManager(jobs, guard=StoreGuard("job_store", config), logger=logger)
        logger.info(
            "Broker started",
            allowlist_backend=type(allowlist_store).__name__,
            job_store_backend=type(jobs).__name__,
            seeded_hosts=seeded,
        )

        yield

        await allowlist_store.close()
        await jobs.close()
        if pool is not None:
            await pool.close()
        logger.info("Broker stopped")

    app = FastAPI(title="Browza Broker", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.logger = logger

    _register_error_handlers(app, logger)
    _register_routes(app)

    # Added innermost first: sanitation runs before anything reads the request.
    app.add_middleware(SanitizeHeadersMiddleware)
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessLogMiddleware, logger=logger)
    return app


def _register_error_handlers(app: FastAPI, logger: StructuredLogger) -> None:
    @app.exception_handler(BrokerError)
    async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.log_error(exc, "Request failed", path=request.url.path)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": ErrorCode.INVALID_REQUEST.value})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        codes = {404: ErrorCode.NOT_FOUND, 405: ErrorCode.METHOD_NOT_ALLOWED}
        code = codes.get(exc.status_code, ErrorCode.INVALID_REQUEST)
        return JSONResponse(status_code=exc.status_code, content={"error": code.value})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.log_error(exc, "Unhandled error", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": ErrorCode.INTERNAL_ERROR.value})


def _register_routes(app: FastAPI) -> None:
    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"ok": "true"}

    # ---- buyer ----------------------------------------------------------

    @app.post("/jobs", response_model=JobAccepted)
    async def submit_job(body: SubmitJobRequest, request: Request) -> Any:
        engine: PolicyEngine = request.app.state.policy_engine
        manager: JobManager = request.app.state.job_manager

        result = await engine.admit(JobRequest.from_payload(body.to_payload()))
        if not result.admitted:
            return JSONResponse(status_code=result.reason.http_status, content=result.to_response())

        record = await manager.create(result.job)
        return JobAccepted(
            job_id=record.job_id,
            url=record.url,
            method=record.method,
            status=record.status.value,
        )

    @app.get("/jobs", response_model=JobList)
    async def list_jobs(
        request: Request,
        status: JobStatus | None = None,
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
    ) -> Any:
        manager: JobManager = request.app.state.job_manager
        records = await manager.list(JobFilter(status=status, limit=limit, offset=offset))
        return JobList(jobs=[JobView.from_record(r) for r in records])

    @app.get("/jobs/{job_id}", response_model=JobStatusView)
    async def job_status(job_id: str, request: Request) -> Any:
        manager: JobManager = request.app.state.job_manager
        return await manager.get_status(job_id)

    @app.get("/jobs/{job_id}/summary", response_model=JobSummaryView)
    async def job_summary(job_id: str, request: Request) -> Any:
        manager: JobManager = request.app.state.job_manager
        return await manager.get_summary(job_id)

    # ---- allow-list admin -----------------------------------------------

    @app.post("/admin/allowlist/add", response_model=AllowlistAdded)
    async def allowlist_add(body: AllowlistAddRequest, request: Request) -> Any:
        if not normalize_host(body.host):
            return JSONResponse(status_code=400, content={"error": ErrorCode.HOST_REQUIRED.value})
        store: AllowlistStore = request.app.state.allowlist
        guard: StoreGuard = request.app.state.allowlist_guard
        added = await guard.call(store.add(body.host), operation="allowlist.add")
        request.app.state.logger.info("Allow-list host added", host=added)
        return AllowlistAdded(added=added)

    @app.get("/admin/allowlist", response_model=AllowlistHosts)
    async def allowlist_list(request: Request) -> Any:
        store: AllowlistStore = request.app.state.allowlist
        guard: StoreGuard = request.app.state.allowlist_guard
        return AllowlistHosts(hosts=await guard.call(store.list(), operation="allowlist.list"))

    # ---- seller / executor ----------------------------------------------

    @app.post("/seller/jobs/{job_id}/start", response_model=JobStatusView)
    async def seller_start(job_id: str, request: Request, body: MetricsReport | None = None) -> Any:
        manager: JobManager = request.app.state.job_manager
        record = await manager.start(job_id, body.to_metrics() if body else None)
        return record.status_view()

    @app.post("/seller/jobs/{job_id}/metrics", response_model=JobStatusView)
    async def seller_metrics(job_id: str, body: MetricsReport, request: Request) -> Any:
        manager: JobManager = request.app.state.job_manager
        record = await manager.record_metrics(job_id, body.to_metrics() or JobMetrics())
        return record.status_view()

    @app.post("/seller/jobs/{job_id}/complete", response_model=JobStatusView)
    async def seller_complete(job_id: str, request: Request, body: MetricsReport | None = None) -> Any:
        manager: JobManager = request.app.state.job_manager
        record = await manager.complete(job_id, body.to_metrics() if body else None)
        return record.status_view()

    @app.post("/seller/jobs/{job_id}/fail", response_model=JobStatusView)
    async def seller_fail(job_id: str, request: Request, body: FailureReport | None = None) -> Any:
        manager: JobManager = request.app.state.job_manager
        record = await manager.fail(
            job_id,
            error=body.error if body else None,
            metrics=body.to_metrics() if body else None,
        )
        return record.status_view()


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "browza_api.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
