"""Avatar and product image storage on local disk, served under ``/uploads``."""
import logging
import os
import random
import time
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from .config import get_settings
from .errors import ValidationFailure

log = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
KINDS = {"avatars": "avatar", "products": "product"}
URL_PREFIX = "/uploads/"
CHUNK = 64 * 1024


def upload_root() -> Path:
    return Path(get_settings().upload_dir)


def ensure_dirs() -> None:
    for kind in KINDS:
        (upload_root() / kind).mkdir(parents=True, exist_ok=True)


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


async def save_image(upload: UploadFile, kind: str) -> str:
    """Validate and store an uploaded image; return its public path."""
    if kind not in KINDS:
        raise ValueError(f"unknown upload kind: {kind}")
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS or (upload.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise ValidationFailure("Only image files are allowed (jpeg, jpg, png, gif, webp)")

    limit = get_settings().max_upload_bytes
    name = f"{KINDS[kind]}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"
    target_dir = upload_root() / kind
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / name

    written = 0
    with open(target, "wb") as out:
        while True:
            chunk = await upload.read(CHUNK)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                break
            out.write(chunk)
    if written > limit:
        target.unlink(missing_ok=True)
        raise ValidationFailure(f"File size too large. Maximum size is {limit // (1024 * 1024)}MB")

    log.info("stored %s upload %s (%d bytes)", kind, name, written)
    return f"{URL_PREFIX}{kind}/{name}"


def delete_file(public_path: Optional[str]) -> None:
    if not public_path or not public_path.startswith(URL_PREFIX):
        return
    relative = public_path[len(URL_PREFIX):]
    path = (upload_root() / relative).resolve()
    # never follow a stored path outside the upload directory
    if upload_root().resolve() not in path.parents:
        return
    if path.exists():
        path.unlink()
        log.info("removed upload %s", relative)
