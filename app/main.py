import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.database import Base, engine
from app.config import settings

# Import models so SQLAlchemy registers tables
from app.models import (
    user,
    post,
    post_allowed_role,
    post_media,
)

# Routers
from app.routers import posts_router


logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# -----------------------
# AUTO-CREATE MEDIA FOLDER
# -----------------------
def ensure_media_folders():
    """
    Create the media root on startup. Files are served through the gated
    /posts/media routes only, never as static files.
    """
    os.makedirs(settings.LOCAL_MEDIA_PATH, exist_ok=True)


# -----------------------
# CREATE APP
# -----------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Role-gated media posts with author-side media ordering.",
    version="1.0.0",
)
logger.info("Database URL: %s", settings.DATABASE_URL)

# -----------------------
# CORS (ONLY ONCE)
# -----------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # allow all during development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------
# DATABASE TABLES
# -----------------------
Base.metadata.create_all(bind=engine)
ensure_media_folders()

# -----------------------
# ROUTES
# -----------------------
app.include_router(posts_router.router)


# -----------------------
# HEALTH CHECK
# -----------------------
@app.get("/")
def root():
    return {"message": "Media Vault API is running!"}
