"""
Validation of inbound image submissions.

All checks here run before anything is sent upstream.
"""

import re
from typing import Optional

from .config import ServiceConfig
from .errors import ErrorKind, ValidationFailure


def os_path_basename(path: str) -> str:
    """Cross-platform basename."""
    return path.replace("\\", "/").split("/")[-1]


def file_extension(filename: str) -> str:
    """Lowercased extension without the dot, or "" if there is none."""
    name = os_path_basename(filename)
    parts = name.rsplit(".", 1)
    if len(parts) == 2 and parts[0]:
        return parts[1].lower()
    return ""


def sanitize_filename(filename: str) -> str:
    """Make a filename safe to forward in a multipart upload."""
    if not filename:
        return "unnamed"

    filename = os_path_basename(filename)
    filename = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', filename)
    filename = re.sub(r'\.{2,}', '.', filename)
    filename = re.sub(r'^\.+', '', filename)

    if len(filename) > 255:
        name, _, ext = filename.rpartition(".")
        filename = name[:250] + "." + ext if name else filename[:255]

    return filename or "unnamed"


def validate_image(
    filename: Optional[str],
    content: Optional[bytes],
    config: ServiceConfig,
) -> str:
    """Check presence, extension and size of an upload.

    Returns the extension on success, raises ValidationFailure otherwise.
    """
    if not content or not filename:
        raise ValidationFailure("No image file in submission", ErrorKind.INVALID_FILE)

    ext = file_extension(filename)
    if ext not in config.allowed_extensions:
        raise ValidationFailure(
            f"Unsupported image extension: {ext or '(none)'}. "
            f"Supported: {', '.join(sorted(config.allowed_extensions))}",
            ErrorKind.UNSUPPORTED_FORMAT,
        )

    if len(content) > config.max_upload_bytes:
        raise ValidationFailure(
            f"Image is {len(content)} bytes, limit is {config.max_upload_bytes}",
            ErrorKind.FILE_TOO_LARGE,
        )

    return ext


def guess_content_type(ext: str) -> str:
    if ext in ("jpg", "jpeg"):
        return "image/jpeg"
    return f"image/{ext}"
