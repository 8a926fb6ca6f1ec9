"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eatlock_api.api.dependencies import get_image_store
from eatlock_api.api.routes import nutrition, storage, usage, vision
from eatlock_api.core.config import get_settings
from eatlock_api.core.exceptions import APIError
from eatlock_api.core.scheduler import start_scheduler, stop_scheduler
from eatlock_api.db.mongo import MongoDB
from eatlock_api.services.auth import get_identity_client
from eatlock_api.services.vision import get_vision_model_client

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(f"Starting {settings.app_name} v{settings.api_version}")
    logger.info(f"Connecting to MongoDB at {settings.mongo_uri[:20]}...")

    MongoDB.connect(settings.mongo_uri, settings.db_name)
    await MongoDB.ensure_indexes(MongoDB.get_database())

    if not settings.is_model_configured:
        logger.warning("Vision model API key not set; verification calls will fail")

    image_store_factory = app.dependency_overrides.get(get_image_store, get_image_store)
    start_scheduler(image_store_factory(), settings)

    yield

    # Shutdown
    logger.info("Shutting down...")
    stop_scheduler()
    await get_vision_model_client().close()
    await get_identity_client().close()
    MongoDB.close()
    logger.info("MongoDB connection closed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        description="Meal photo verification API with layered quota enforcement",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Tag each request with an id, log it, and turn crashes into 502s."""
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[req:{request_id}] Unhandled error on {request.method} {request.url.path}")
            response = JSONResponse(status_code=502, content={"error": "Internal error"})

        response.headers["x-request-id"] = request_id
        logger.info(f"[req:{request_id}] {request.method} {request.url.path} -> {response.status_code}")
        return response

    # Exception handlers
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        """Handle custom API errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Render request-shape errors (including unknown fields) as 400."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={
                "error": f"Invalid request: {location}: {message}" if location else f"Invalid request: {message}",
                "details": jsonable_encoder(errors, custom_encoder={Exception: str}),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.api_version,
            "mongodb": MongoDB.is_connected(),
            "model_configured": settings.is_model_configured,
            "auth_configured": settings.is_auth_configured,
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": settings.app_name,
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Include routers
    app.include_router(vision.router, prefix="/vision", tags=["Vision"])
    app.include_router(nutrition.router, prefix="/nutrition", tags=["Nutrition"])
    app.include_router(storage.router, prefix="/storage", tags=["Storage"])
    app.include_router(usage.router, prefix="/usage", tags=["Usage"])

    return app


# Create app instance
app = create_app()
