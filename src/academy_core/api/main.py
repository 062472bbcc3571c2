"""Academy Core FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy_core import __version__

from ..config import get_settings
from .routers import access, notifications

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("academy-core")

logger.info("Starting Academy Core API")

# Create FastAPI app
app = FastAPI(
    title="Academy Core API",
    description="Level access requests, reviews and notifications",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all business logic routers with /api/v1 prefix
app.include_router(access.router, prefix="/api/v1/access")
app.include_router(notifications.router, prefix="/api/v1/notifications")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Academy Core API",
        "version": __version__,
        "docs": "/docs",
        "description": "Level access requests, reviews and notifications",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
