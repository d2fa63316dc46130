"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dealer_crm.config import settings
from dealer_crm.database import lifespan_db
from dealer_crm.errors import CRMError
from dealer_crm.services.config_cache import ConfigCache
from dealer_crm.utils.logging import get_logger, setup_logging
from dealer_crm.worker import AutoResponseWorker

# Setup logging
setup_logging(debug=settings.debug)

# Import routers
from dealer_crm.api.auto_response import router as auto_response_router  # noqa: E402
from dealer_crm.api.cron import router as cron_router  # noqa: E402
from dealer_crm.api.leads import router as leads_router  # noqa: E402
from dealer_crm.api.notifications import router as notifications_router  # noqa: E402
from dealer_crm.api.pipeline import router as pipeline_router  # noqa: E402

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    app.state.config_cache = ConfigCache(settings.auto_response_config_ttl_seconds)
    app.state.worker = None

    async with lifespan_db():
        if settings.worker_enabled:
            app.state.worker = AutoResponseWorker()
            app.state.worker.start()
        try:
            yield
        finally:
            if app.state.worker is not None:
                await app.state.worker.stop()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Dealer CRM: lead lifecycle and inventory matching",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError) -> JSONResponse:
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(leads_router, prefix="/leads", tags=["Leads"])
app.include_router(pipeline_router)
app.include_router(notifications_router)
app.include_router(auto_response_router)
app.include_router(cron_router)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    worker = getattr(app.state, "worker", None)
    return {
        "status": "healthy",
        "database": "connected",
        "worker": "running" if worker is not None else "disabled",
        "email": "configured" if settings.email_configured else "not_configured",
    }
