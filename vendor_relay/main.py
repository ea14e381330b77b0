import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from vendor_relay.config import Settings, settings as default_settings
from vendor_relay.errors import ServiceError
from vendor_relay.metrics import REQUEST_COUNT, REQUEST_DURATION
from vendor_relay.models import (
    JobListResponse,
    JobRequest,
    JobResponse,
    JobStatus,
    JobStatusResponse,
    VendorType,
    WebhookResponse,
)
from vendor_relay.selection import VendorSelector
from vendor_relay.services import ServiceContainer, build_services

# Configure logging
logging.basicConfig(
    level=default_settings.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


@router.post("/jobs", response_model=JobResponse, status_code=201)
async def create_job(request: Optional[JobRequest] = None, services: ServiceContainer = Depends(get_services)):
    """
    Create a new job

    Accepts any JSON payload and returns a request_id immediately.
    The job will be dispatched to a vendor in the background.
    """
    request_id = await services.jobs.submit(request.payload if request else None)
    return JobResponse(request_id=request_id)


@router.get("/jobs/{request_id}/status", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_job_status(request_id: str, services: ServiceContainer = Depends(get_services)):
    """
    Get the status of a job

    Result or error and the completion time are only present once the job is finished.
    """
    job = await services.jobs.get_job(request_id)
    return JobStatusResponse(
        status=job.status,
        request_id=job.request_id,
        vendor=job.vendor,
        created_at=job.created_at,
        updated_at=job.updated_at,
        result=job.result if job.status == JobStatus.COMPLETE else None,
        error=job.error if job.status == JobStatus.FAILED else None,
        completed_at=job.completed_at,
    )


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = None,
    vendor: Optional[VendorType] = None,
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    services: ServiceContainer = Depends(get_services),
):
    """List jobs newest first, optionally filtered by status and vendor"""
    jobs, pagination = await services.jobs.list_jobs(status=status, vendor=vendor, limit=limit, page=page)
    return JobListResponse(jobs=jobs, pagination=pagination)


@router.post("/vendor-webhook/{vendor}", response_model=WebhookResponse)
async def vendor_webhook(vendor: str, payload: Any = Body(None), services: ServiceContainer = Depends(get_services)):
    """
    Webhook endpoint for vendors to send results

    Completes the processing job the callback belongs to.
    """
    job = await services.correlator.handle(vendor, payload)
    if job is None:
        return JSONResponse(status_code=404, content={"error": "No processing job found for this vendor"})
    return WebhookResponse(status="success", message="Webhook processed successfully", request_id=job.request_id)


def create_app(
    settings: Optional[Settings] = None,
    selector: Optional[VendorSelector] = None,
    vendor_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {settings.APP_NAME}")
        services = await build_services(settings, selector=selector, vendor_transport=vendor_transport)
        app.state.services = services
        dispatcher_task = None
        if settings.RUN_DISPATCHER_IN_API:
            dispatcher_task = asyncio.create_task(services.dispatcher.run())
        yield
        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}")
        if dispatcher_task is not None:
            services.dispatcher.stop()
            await dispatcher_task
        await services.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Routes jobs to external vendors and tracks their completion",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        # Record metrics
        REQUEST_DURATION.observe(process_time)
        REQUEST_COUNT.labels(method=request.method, endpoint=request.url.path, status=response.status_code).inc()

        return response

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {"message": settings.APP_NAME, "version": "1.0.0", "status": "running"}

    @app.get("/health")
    async def health_check(services: ServiceContainer = Depends(get_services)):
        """Health check endpoint"""
        database_ok = await services.store.ping()
        queue_ok = await services.queue.ping()
        queue_depth = await services.queue.size() if queue_ok else None
        return {
            "status": "healthy" if database_ok and queue_ok else "degraded",
            "timestamp": time.time(),
            "services": {
                "database": "connected" if database_ok else "unavailable",
                "queue": "connected" if queue_ok else "unavailable",
            },
            "queue_depth": queue_depth,
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(ServiceError)
    async def service_exception_handler(request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"Internal failure on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("vendor_relay.main:app", host="0.0.0.0", port=8000, reload=default_settings.DEBUG)
