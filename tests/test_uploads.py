# tests/test_uploads.py
import io
import os

import pytest
from PIL import Image

from uploads import UploadError, list_uploads, remove_upload, save_upload, validate_image

MAX_BYTES = 1024 * 1024


def png_bytes(size=(8, 8)):
    buf = io.BytesIO()
    Image.new("L", size, color=128).save(buf, format="PNG")
    return buf.getvalue()


def test_save_upload_stores_file(tmp_path):
    path = save_upload(png_bytes(), "scan.PNG", "image/png", tmp_path / "uploads", MAX_BYTES)
    assert path.parent == tmp_path / "uploads"
    assert path.name.startswith("ct-scan-")
    assert path.suffix == ".png"
    assert path.read_bytes() == png_bytes()


def test_extension_falls_back_to_content_type(tmp_path):
    buf = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buf, format="JPEG")
    path = save_upload(buf.getvalue(), "scan", "image/jpeg", tmp_path, MAX_BYTES)
    assert path.suffix == ".jpg"


@pytest.mark.parametrize("contents, content_type, reason", [
    (png_bytes(), "application/pdf", "Invalid file type"),
    (b"", "image/png", "empty"),
    (b"not an image at all", "image/png", "not a valid image"),
])
def test_rejected_uploads(contents, content_type, reason):
    with pytest.raises(UploadError, match=reason):
        validate_image(contents, content_type, MAX_BYTES)


def test_oversized_upload_is_rejected():
    with pytest.raises(UploadError, match="File too large"):
        validate_image(png_bytes(), "image/png", 10)


def test_list_uploads_newest_first(tmp_path):
    older = tmp_path / "ct-scan-1.png"
    newer = tmp_path / "ct-scan-2.jpg"
    older.write_bytes(b"a")
    newer.write_bytes(b"bb")
    (tmp_path / ".gitkeep").write_text("")
    (tmp_path / "notes.txt").write_text("x")
    os.utime(older, (1000, 1000))
    os.utime(newer, (2000, 2000))

    entries = list_uploads(tmp_path)

    assert [e["fileName"] for e in entries] == ["ct-scan-2.jpg", "ct-scan-1.png"]
    assert entries[0]["imagePath"] == "/uploads/ct-scan-2.jpg"
    assert entries[0]["size"] == 2
    assert set(entries[0]) == {"fileName", "imagePath", "uploadedAt", "size"}


def test_list_uploads_missing_dir(tmp_path):
    assert list_uploads(tmp_path / "missing") == []


def test_remove_upload_is_idempotent(tmp_path):
    path = tmp_path / "ct-scan-1.png"
    path.write_bytes(b"a")
    remove_upload(path)
    remove_upload(path)
    assert not path.exists()
