from __future__ import annotations

import os
import re
import time
from typing import Optional

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import ValidationError


ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def build_upload_name(original: str, prefix: str = "") -> str:
    safe = secure_filename(original or "")
    base, ext = os.path.splitext(safe)
    base = _UNSAFE_CHARS.sub("", base) or "upload"
    stamp = int(time.time() * 1000)
    return f"{prefix}{base}-{stamp}{ext.lower()}"


def save_upload(file: Optional[FileStorage], prefix: str = "") -> Optional[str]:
    """Store an uploaded image as-is and return its public ``/uploads/...`` path."""
    if not file or not file.filename:
        return None
    if not allowed_file(file.filename):
        raise ValidationError("Unsupported file type")
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    filename = build_upload_name(file.filename, prefix)
    file.save(os.path.join(folder, filename))
    return f"/uploads/{filename}"


def discard_upload(url: Optional[str]) -> None:
    """Remove a file stored by :func:`save_upload`; unknown paths are ignored."""
    if not url or not url.startswith("/uploads/"):
        return
    path = os.path.join(current_app.config["UPLOAD_FOLDER"], os.path.basename(url))
    if os.path.isfile(path):
        os.remove(path)
