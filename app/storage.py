import logging
import os
import shutil
import uuid
from pathlib import Path

from fastapi import UploadFile

from app.config import settings
from app.core.errors import ValidationError

logger = logging.getLogger(__name__)


# ==========================================================
# LIMITS
# ==========================================================
MAX_IMAGE_SIZE = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


# ==========================================================
# VALIDATE UPLOAD
# ==========================================================
def validate_image(file: UploadFile):
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Unsupported image type")

    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)

    if size == 0:
        raise ValidationError("File is empty")
    if size > MAX_IMAGE_SIZE:
        raise ValidationError("Image too large (max 5MB).")


def ensure_media_folders():
    Path(settings.LOCAL_MEDIA_PATH).mkdir(parents=True, exist_ok=True)


# ==========================================================
# SAVE FILE
# ==========================================================
def save_file(folder: str, file: UploadFile, filename: str | None = None) -> str:
    """Writes the upload under LOCAL_MEDIA_PATH and returns its /media/... path."""
    folder = folder.strip("/")

    if not filename:
        ext = os.path.splitext(file.filename or "")[1].lower()
        filename = f"{uuid.uuid4()}{ext}"

    folder_path = Path(settings.LOCAL_MEDIA_PATH) / folder
    folder_path.mkdir(parents=True, exist_ok=True)

    file_path = folder_path / filename
    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(file.file, buffer)

    rel = file_path.relative_to(settings.LOCAL_MEDIA_PATH)
    return f"/media/{rel}".replace("\\", "/")


# ==========================================================
# DELETE FILE
# ==========================================================
def delete_file(path: str | None):
    # Only files we stored ourselves
    if not path or not path.startswith("/media/"):
        return

    root = Path(settings.LOCAL_MEDIA_PATH).resolve()
    fs_path = (root / path[len("/media/"):]).resolve()
    if not fs_path.is_relative_to(root):
        logger.warning("Refusing to delete %s outside the media folder", path)
        return

    if fs_path.is_file():
        try:
            fs_path.unlink()
        except OSError as e:
            logger.warning("Could not delete media file %s: %s", fs_path, e)
