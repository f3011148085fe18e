"""Tests for upload validation."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from server.services.uploads import UploadValidationError, guess_mime, normalize_mime, validate_upload

MB = 1024 * 1024


def test_pdf_accepted():
    assert validate_upload("notes.pdf", "application/pdf", 1000, 4 * MB, kind="pdf") == "application/pdf"


def test_content_type_parameters_ignored():
    assert normalize_mime("Application/PDF; charset=binary") == "application/pdf"
    assert validate_upload("a.pdf", "application/pdf; x=y", 10, MB) == "application/pdf"


def test_missing_content_type_inferred_from_extension():
    assert validate_upload("scan.PNG", None, 10, MB) == "image/png"
    assert validate_upload("notes.pdf", "application/octet-stream", 10, MB, kind="pdf") == "application/pdf"
    assert guess_mime("photo.jpeg") == "image/jpeg"
    assert guess_mime("README") == ""


def test_pdf_route_rejects_image():
    with pytest.raises(UploadValidationError) as excinfo:
        validate_upload("cell.png", "image/png", 10, MB, kind="pdf")
    assert "Only PDF files are supported." in str(excinfo.value)
    assert excinfo.value.status_code == 400


def test_image_route_rejects_pdf():
    with pytest.raises(UploadValidationError):
        validate_upload("notes.pdf", "application/pdf", 10, MB, kind="image")


def test_unknown_type_rejected():
    with pytest.raises(UploadValidationError) as excinfo:
        validate_upload("notes.docx", None, 10, MB)
    assert "unknown" in str(excinfo.value)


def test_empty_file_rejected():
    with pytest.raises(UploadValidationError) as excinfo:
        validate_upload("notes.pdf", "application/pdf", 0, MB)
    assert "empty" in str(excinfo.value)


def test_oversize_rejected():
    with pytest.raises(UploadValidationError) as excinfo:
        validate_upload("big.pdf", "application/pdf", int(5.2 * MB), int(4.5 * MB))
    msg = str(excinfo.value)
    assert "File too large: 5.2MB" in msg
    assert "4.5MB" in msg


def test_exactly_at_limit_accepted():
    assert validate_upload("a.pdf", "application/pdf", 4 * MB, 4 * MB) == "application/pdf"
