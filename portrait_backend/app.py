# FILE: portrait_backend/app.py
"""
FastAPI application entry point for the AI Business Portrait Generator
Preview-then-pay portrait generation with server-side watermarking
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portrait_backend.config import get_settings
from portrait_backend.constants import APP_NAME, APP_VERSION, ERROR_MESSAGES
from portrait_backend.middleware.body_limit import BodySizeLimitMiddleware
from portrait_backend.middleware.rate_limit import RateLimitMiddleware
from portrait_backend.providers.registry import get_image_provider
from portrait_backend.routes import debug, generation, health, payment
from portrait_backend.services.correlation import set_correlation_id
from portrait_backend.services.payments import get_payment_verifier
from portrait_backend.services.telemetry import init_telemetry

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    logger.info(f"Starting {APP_NAME} backend v{APP_VERSION} (environment={settings.environment})")

    # Provider and payment gate are chosen once; misconfiguration aborts startup
    provider = get_image_provider()
    verifier = get_payment_verifier()
    logger.info(f"Image provider: {provider.name} (model={provider.model}); payment verifier: {verifier.name}")

    init_telemetry()

    yield

    logger.info(f"Shutting down {APP_NAME} backend")


app = FastAPI(
    title=f"{APP_NAME} API",
    description="Watermarked previews and paid full-resolution business portraits",
    version=APP_VERSION,
    lifespan=lifespan
)

# Middleware added last runs first; CORS wraps the 429/413 short-circuits

# Rate limiting
if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware, paths=settings.rate_limit_paths)

# Body size limit
app.add_middleware(BodySizeLimitMiddleware, max_size=settings.body_size_limit_mb * 1024 * 1024)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After", "X-Request-ID"],
)


@app.middleware("http")
async def correlation_middleware(request: Request, call_next):
    cid = set_correlation_id(request.headers.get("x-request-id"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = cid
    return response


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        fields.append(f"{location or 'body'} ({error.get('msg', 'invalid')})")
    logger.info(f"Request validation failed on {request.url.path}: {fields}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"Missing or invalid fields: {', '.join(fields)}"}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": ERROR_MESSAGES["INTERNAL_ERROR"]}
    )

# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(generation.router, prefix="/api", tags=["generation"])
app.include_router(payment.router, prefix="/api/payment", tags=["payment"])
app.include_router(debug.router, prefix="/api/debug", tags=["debug"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": APP_NAME,
        "version": APP_VERSION,
        "status": "active"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "portrait_backend.app:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.is_development()
    )
