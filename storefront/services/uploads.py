from __future__ import annotations

import logging
import mimetypes
import os
import re
import secrets
import shutil
from pathlib import Path

from fastapi import HTTPException

from storefront.core.config import settings

_LOG = logging.getLogger("storefront.uploads")

ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
_MIME_BY_EXT = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9.-]+$")


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR)


def temp_dir() -> Path:
    return upload_root() / settings.UPLOAD_TEMP_SUBDIR


def images_dir() -> Path:
    return upload_root() / settings.UPLOAD_SUBDIR


def detect_mime_type(original_name: str, declared: str | None) -> str | None:
    ext = os.path.splitext(original_name)[1].lower()
    if ext in _MIME_BY_EXT:
        return _MIME_BY_EXT[ext]
    guessed, _ = mimetypes.guess_type(original_name)
    return guessed or (declared or None)


def validate_upload_or_400(original_name: str, declared_mime: str | None, size: int) -> str:
    mime_type = detect_mime_type(original_name, declared_mime)
    if not mime_type or mime_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(status_code=400, detail="Unsupported file type. Only JPEG, PNG, GIF and WebP images are allowed")
    ext = os.path.splitext(original_name)[1].lower()
    if ext not in _MIME_BY_EXT:
        raise HTTPException(status_code=400, detail="Unsupported file extension")
    if size < int(settings.UPLOAD_MIN_BYTES):
        raise HTTPException(status_code=400, detail=f"File is too small. Minimum size: {settings.UPLOAD_MIN_BYTES // 1024}KB")
    if size > int(settings.UPLOAD_MAX_BYTES):
        raise HTTPException(
            status_code=400,
            detail=f"File is too large. Maximum size: {settings.UPLOAD_MAX_BYTES // (1024 * 1024)}MB",
        )
    return mime_type


def build_stored_name(original_name: str) -> str:
    ext = os.path.splitext(original_name)[1].lower() or ".png"
    name = f"{secrets.token_hex(16)}{ext}"
    if not _SAFE_NAME_RE.fullmatch(name):
        raise HTTPException(status_code=400, detail="Invalid file name")
    return name


def store_temp_file(stored_name: str, content: bytes) -> Path:
    target_dir = temp_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / stored_name
    target.write_bytes(content)
    return target


def public_file_name(stored_name: str) -> str:
    return f"/{settings.UPLOAD_SUBDIR}/{stored_name}" if settings.UPLOAD_SUBDIR else f"/{stored_name}"


def _inside(path: Path, directory: Path) -> bool:
    try:
        path.resolve().relative_to(directory.resolve())
    except ValueError:
        return False
    return True


def resolve_upload_or_400(file_name: str) -> str:
    """Check that ``file_name`` names an uploaded image and return its base name.

    Only the base name is used, so ``../`` segments cannot escape the upload
    directories. The file must still be in temp or already be published.
    """
    safe_name = os.path.basename(str(file_name or "").replace("\\", "/"))
    if not safe_name or not _SAFE_NAME_RE.fullmatch(safe_name):
        raise HTTPException(status_code=400, detail="Invalid file path")
    source = temp_dir() / safe_name
    dest = images_dir() / safe_name
    if not _inside(source, temp_dir()) or not _inside(dest, images_dir()):
        raise HTTPException(status_code=400, detail="Invalid file path")
    if not source.is_file() and not dest.is_file():
        raise HTTPException(status_code=400, detail="Uploaded file not found")
    return safe_name


def move_to_permanent(file_name: str) -> str:
    """Move an uploaded image from the temp directory into the public images directory."""
    safe_name = resolve_upload_or_400(file_name)
    source = temp_dir() / safe_name
    if not source.is_file():
        return safe_name
    dest_dir = images_dir()
    dest_dir.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(dest_dir / safe_name))
    _LOG.info("moved upload %s to %s", safe_name, dest_dir)
    return safe_name
