"""
Inventory Service
Products, suppliers, a category hierarchy and an append-only stock ledger
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import subprocess
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from inventory_api.core_settings import get_settings
from inventory_api.api.auth import router as auth_router
from inventory_api.api.categories import router as categories_router
from inventory_api.api.dashboard import router as dashboard_router
from inventory_api.api.errors import register_exception_handlers
from inventory_api.api.products import router as products_router
from inventory_api.api.suppliers import router as suppliers_router
from inventory_api.api.transactions import router as transactions_router
from inventory_api.infrastructure.db import engine, init_models
from inventory_api.infrastructure.immutability import register_immutability_listeners

settings = get_settings()

SERVICE_NAME = settings.SERVICE_NAME
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_DESCRIPTION = "Inventory management service"
PROJECT_ROOT = os.path.join(os.path.dirname(__file__), "..")

# Setup structured logging
setup_logging(
    service_name=SERVICE_NAME,
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE
)

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

    # Startup
    if settings.RUN_MIGRATIONS:
        try:
            logger.info("Running database migrations")
            result = subprocess.run(
                ["alembic", "upgrade", "head"],
                cwd=PROJECT_ROOT,
                capture_output=True,
                text=True,
                check=False
            )
            if result.returncode != 0:
                logger.warning(f"Migration output: {result.stderr}")
            else:
                logger.info("Database migrations completed")
        except OSError as e:
            logger.error(f"Migration error: {e}")

    # Initialize database models
    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    register_immutability_listeners()
    logger.info(f"{SERVICE_NAME} started successfully")

    yield

    # Shutdown
    logger.info(f"Shutting down {SERVICE_NAME}")

# Create FastAPI application
app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Initialize health checks
health_service = ServiceHealth(SERVICE_NAME, SERVICE_VERSION, engine)
health_router = health_service.create_health_router()
app.include_router(health_router)

# Include business logic routes
app.include_router(products_router)
app.include_router(categories_router)
app.include_router(suppliers_router)
app.include_router(transactions_router)
app.include_router(dashboard_router)
app.include_router(auth_router)

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }

@app.get("/info")
async def info():
    """Service information endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "environment": settings.ENVIRONMENT,
        "endpoints": {
            "health": "/health",
            "ready": "/health/ready",
            "live": "/health/live",
            "metrics": "/metrics",
            "docs": "/api/docs",
            "products": "/products",
            "categories": "/categories",
            "suppliers": "/suppliers",
            "transactions": "/transactions",
            "dashboard": "/dashboard"
        }
    }
