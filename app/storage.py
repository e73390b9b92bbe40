import logging
import os
import shutil
import uuid
from pathlib import Path

from fastapi import UploadFile

from app.config import settings

logger = logging.getLogger(__name__)

MEDIA_URL_PREFIX = "/media/"


# ==========================================================
# FILE SIZE
# ==========================================================
def get_file_size(file: UploadFile) -> int:
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


def validate_file_size(file: UploadFile, media_type: str):
    size = get_file_size(file)

    if media_type == "image" and size > settings.MAX_IMAGE_MB * 1024 * 1024:
        return False, f"Image too large (max {settings.MAX_IMAGE_MB}MB)."

    if media_type == "video" and size > settings.MAX_VIDEO_MB * 1024 * 1024:
        return False, f"Video too large (max {settings.MAX_VIDEO_MB}MB)."

    return True, None


# ==========================================================
# SAVE FILE (LOCAL)
# ==========================================================
def save_file(folder: str, file: UploadFile, filename: str | None = None) -> str:
    folder = folder.strip("/")

    if not filename:
        ext = os.path.splitext(file.filename or "")[1].lower()
        filename = f"{uuid.uuid4().hex}{ext}"

    folder_path = Path(settings.LOCAL_MEDIA_PATH) / folder
    folder_path.mkdir(parents=True, exist_ok=True)

    file_path = folder_path / filename

    file.file.seek(0)
    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(file.file, buffer)

    rel = file_path.relative_to(settings.LOCAL_MEDIA_PATH)
    return f"{MEDIA_URL_PREFIX}{rel}".replace("\\", "/")


# ==========================================================
# RESOLVE STORED PATH
# ==========================================================
def resolve_local_path(path: str) -> Path | None:
    """
    Map a stored "/media/..." path back onto LOCAL_MEDIA_PATH. Anything
    that would escape the media root resolves to None.
    """
    if not path or not path.startswith(MEDIA_URL_PREFIX):
        return None

    root = Path(settings.LOCAL_MEDIA_PATH).resolve()
    candidate = (root / path[len(MEDIA_URL_PREFIX):]).resolve()

    if root != candidate and root not in candidate.parents:
        return None
    return candidate


# ==========================================================
# DELETE FILE
# ==========================================================
def delete_file(path: str):
    if not path:
        return

    fs_path = resolve_local_path(path)
    if fs_path is None or not fs_path.exists():
        return

    try:
        fs_path.unlink()
    except OSError as e:
        logger.error("Failed to delete media file %s: %s", path, e)
