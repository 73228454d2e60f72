"""
Input validation for content entities and media assets.

Each validator returns ``(is_valid, message)`` so callers can decide how to
surface a failure; the pipelines turn a failure into a ``ValidationError``.
"""

from pathlib import PurePosixPath

SUPPORTED_MEDIA_TYPES: dict[str, tuple[str, ...]] = {
    "image/jpeg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/gif": (".gif",),
}

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def validate_title(title: str) -> tuple[bool, str]:
    if not title or not title.strip():
        return (False, "Title is required")
    return (True, "")


def validate_body(body: str) -> tuple[bool, str]:
    if not body or not body.strip():
        return (False, "Content is required")
    return (True, "")


def guess_media_type(file_name: str) -> str | None:
    """Return the supported MIME type for a file name's extension, if any."""
    suffix = PurePosixPath(file_name).suffix.lower()
    for mime_type, extensions in SUPPORTED_MEDIA_TYPES.items():
        if suffix in extensions:
            return mime_type
    return None


def validate_media(
    file_name: str, mime_type: str, size: int
) -> tuple[bool, str]:
    """
    Validate an asset before upload.

    Validation rules:
        - MIME type must be one of ``SUPPORTED_MEDIA_TYPES``
        - The file extension must agree with the MIME type
        - Size must be positive and at most ``MAX_UPLOAD_BYTES``
    """
    extensions = SUPPORTED_MEDIA_TYPES.get((mime_type or "").lower())
    if extensions is None:
        return (False, "Invalid file type")
    if PurePosixPath(file_name).suffix.lower() not in extensions:
        return (False, "Invalid file type")
    if size <= 0:
        return (False, "File is empty")
    if size > MAX_UPLOAD_BYTES:
        return (
            False,
            f"File is too large ({size} bytes, maximum {MAX_UPLOAD_BYTES})",
        )
    return (True, "")
