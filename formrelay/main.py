from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formrelay.api.routes import health
from formrelay.api.v1 import debug, forms
from formrelay.core.config import settings
from formrelay.core.errors import register_exception_handlers
from formrelay.core.logging import setup_logging
from formrelay.core.middleware import RequestIdMiddleware

# Setup logging
logger = setup_logging()


tags_metadata = [
    {
        "name": "forms",
        "description": "**Forms** - Driver license registration and contact submissions with two image attachments, delivered by email.",
    },
    {
        "name": "debug",
        "description": "**Debug** - Dry-run validation echo. Only available when DEBUG is enabled.",
    },
    {
        "name": "health",
        "description": "**Health** - Liveness and setup diagnostics.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Mail transport: {settings.MAIL_TRANSPORT}")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## FormRelay API

Receives multipart form submissions with image attachments, validates them
and forwards them by email.
    """,
    openapi_tags=tags_metadata,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# Request ID Tracing
app.add_middleware(RequestIdMiddleware)

# Register global exception handlers
register_exception_handlers(app)

# Include routers
app.include_router(forms.router, prefix=settings.API_V1_PREFIX, tags=["forms"])
app.include_router(debug.router, prefix=settings.API_V1_PREFIX, tags=["debug"])
app.include_router(health.router)
