"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.upload import router as upload_router
from app.config import get_settings
from app.database import Base, SessionLocal, engine
from app.models import Account, Role, RowOutcome, StudentProfile, TrainerProfile, UploadJob  # noqa: F401 - Import to register models
from app.services.accounts import ensure_roles

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),  # Console output
        logging.FileHandler(settings.log_file),  # File output
    ],
)

# Set specific log levels for noisy libraries
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("celery").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables and seed roles on startup."""
    logger.info(f"Starting batch onboarding ({settings.app_env})")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_roles(db)
    finally:
        db.close()
    yield


app = FastAPI(
    title="Batch Onboarding",
    description="Onboard students and trainers from CSV files, one isolated row at a time",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(upload_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
