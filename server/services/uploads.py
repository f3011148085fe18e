"""Upload validation: MIME allow-list and size cap, checked before any processing."""

from pathlib import Path
from typing import Optional

PDF_MIMES = frozenset({"application/pdf"})
IMAGE_MIMES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
    "image/tiff",
})
ALLOWED_MIMES = PDF_MIMES | IMAGE_MIMES

_EXT_MIMES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


class UploadValidationError(ValueError):
    """Rejected upload. Not retryable without changing the input."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def normalize_mime(content_type: Optional[str]) -> str:
    """Lowercase and drop parameters (e.g. '; charset=...')."""
    return (content_type or "").split(";")[0].strip().lower()


def guess_mime(filename: str) -> str:
    return _EXT_MIMES.get(Path(filename or "").suffix.lower(), "")


def _size_mb(size: int) -> float:
    return round(size / 1024 / 1024 * 10) / 10


def validate_upload(
    filename: str,
    content_type: Optional[str],
    size: int,
    max_bytes: int,
    *,
    kind: str = "any",
) -> str:
    """
    Validate one upload and return its normalized MIME type.

    kind restricts the allowed set: "pdf", "image" or "any".
    A missing or generic content type is inferred from the file extension.
    """
    mime = normalize_mime(content_type)
    if not mime or mime == "application/octet-stream":
        mime = guess_mime(filename)

    allowed = {"pdf": PDF_MIMES, "image": IMAGE_MIMES}.get(kind, ALLOWED_MIMES)
    if mime not in allowed:
        if kind == "pdf":
            raise UploadValidationError(f"Invalid file type: {mime or 'unknown'}. Only PDF files are supported.")
        raise UploadValidationError(
            f"Invalid file type: {mime or 'unknown'}. Supported types: {', '.join(sorted(allowed))}"
        )
    if size <= 0:
        raise UploadValidationError("Uploaded file is empty")
    if size > max_bytes:
        raise UploadValidationError(
            f"File too large: {_size_mb(size)}MB. Maximum size: {max_bytes / 1024 / 1024:g}MB"
        )
    return mime
