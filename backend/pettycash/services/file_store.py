# Overview: Local file store for invoice and payment-proof attachments.

from __future__ import annotations

import os
import secrets
import time

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import FileTooLarge, InvalidFileType, ValidationError


FILE_CATEGORIES = ("invoices", "payments")

ALLOWED_EXTENSIONS = {
    ".jpeg": {"image/jpeg"},
    ".jpg": {"image/jpeg"},
    ".png": {"image/png"},
    ".gif": {"image/gif"},
    ".pdf": {"application/pdf"},
    ".doc": {"application/msword"},
    ".docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
    ".xls": {"application/vnd.ms-excel"},
    ".xlsx": {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"},
    ".txt": {"text/plain"},
}


def upload_root() -> str:
    root = current_app.config["UPLOAD_FOLDER"]
    if not os.path.isabs(root):
        root = os.path.join(current_app.instance_path, root)
    return root


def _check_type(filename: str, mimetype: str | None) -> str:
    ext = os.path.splitext(filename)[1].lower()
    allowed = ALLOWED_EXTENSIONS.get(ext)
    mime = (mimetype or "").split(";")[0].strip().lower()
    if not allowed or mime not in allowed:
        raise InvalidFileType(
            "Invalid file type. Allowed: JPEG, PNG, GIF, PDF, DOC, DOCX, XLS, XLSX, TXT.",
            extension=ext or None,
            mimetype=mime or None,
        )
    return ext


def store(field_category: str, file_bytes: bytes, original_name: str, mimetype: str | None) -> str:
    """
    Validate and write an upload. Returns the stored path relative to UPLOAD_FOLDER.

    Raises InvalidFileType when the extension or MIME type is not allowed
    (both must agree), FileTooLarge above MAX_UPLOAD_BYTES.
    """
    if field_category not in FILE_CATEGORIES:
        raise ValidationError(f"Unknown file category: {field_category}")

    max_bytes = current_app.config["MAX_UPLOAD_BYTES"]
    size = len(file_bytes or b"")
    if size == 0:
        raise ValidationError("Uploaded file is empty")
    if size > max_bytes:
        raise FileTooLarge(
            f"File size too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
            max_bytes=max_bytes,
        )

    safe_name = secure_filename(original_name or "")
    if not safe_name:
        raise InvalidFileType("A file name is required")
    ext = _check_type(safe_name, mimetype)

    stem = os.path.splitext(safe_name)[0][:80] or "file"
    stored_name = f"{stem}-{int(time.time() * 1000)}-{secrets.token_hex(4)}{ext}"
    relative = f"{field_category}/{stored_name}"

    directory = os.path.join(upload_root(), field_category)
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, stored_name), "wb") as fh:
        fh.write(file_bytes)

    current_app.logger.info("Stored %s (%s bytes)", relative, size)
    return relative


def absolute_path(stored_path: str) -> str:
    """Resolve a stored path, refusing anything that escapes UPLOAD_FOLDER."""
    root = os.path.realpath(upload_root())
    full = os.path.realpath(os.path.join(root, stored_path))
    if os.path.commonpath([root, full]) != root:
        raise ValidationError("Invalid file path")
    return full


def delete(stored_path: str | None) -> bool:
    if not stored_path:
        return True
    path = absolute_path(stored_path)
    if not os.path.exists(path):
        return True
    try:
        os.remove(path)
    except OSError:
        current_app.logger.exception("Could not delete %s", stored_path)
        return False
    return True
