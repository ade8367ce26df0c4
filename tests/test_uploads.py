import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.security.sanitizer import InputSanitizer
from app.storage.uploads import discard, folder_for, save_uploads


def _upload(name, content=b"data", content_type="application/pdf"):
    return UploadFile(file=io.BytesIO(content), filename=name, headers=Headers({"content-type": content_type}))


@pytest.mark.parametrize("mime, folder", [
    ("image/png", "images"),
    ("application/pdf", "documents"),
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "documents"),
    ("text/plain", "others"),
])
def test_folder_for(mime, folder):
    assert folder_for(mime) == folder


def test_save_uploads_writes_files(tmp_path):
    stored = save_uploads([_upload("Q3 plan.pdf", b"%PDF-1.4 hello")], upload_dir=str(tmp_path))

    (f,) = stored
    assert f.original_name == "Q3 plan.pdf"
    assert f.mime_type == "application/pdf"
    assert f.file_size == len(b"%PDF-1.4 hello")
    assert f.file_name.endswith(".pdf") and f.file_name != f.original_name
    assert (tmp_path / "documents" / f.file_name).read_bytes() == b"%PDF-1.4 hello"

    discard(stored)
    assert not (tmp_path / "documents" / f.file_name).exists()


def test_save_uploads_rejects_oversized(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 8)
    ok = _upload("small.txt", b"1234", "text/plain")
    big = _upload("big.txt", b"0123456789", "text/plain")

    with pytest.raises(ValidationFailed):
        save_uploads([ok, big], upload_dir=str(tmp_path))
    assert list((tmp_path / "others").iterdir()) == []


def test_save_uploads_limits_count(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "max_attachments", 1)
    with pytest.raises(ValidationFailed):
        save_uploads([_upload("a.pdf"), _upload("b.pdf")], upload_dir=str(tmp_path))


def test_save_uploads_nothing():
    assert save_uploads(None) == []


def test_filename_sanitizer_strips_paths():
    assert InputSanitizer.sanitize_filename("../../etc/passwd") == "passwd"
    assert InputSanitizer.sanitize_filename("C:\\docs\\report<1>.pdf") == "report1.pdf"


@pytest.mark.parametrize("subject", ["line\nbreak", "nul\x00", "bell\x07"])
def test_subject_sanitizer_rejects(subject):
    with pytest.raises(ValueError):
        InputSanitizer.sanitize_subject(subject)


def test_body_sanitizer_keeps_lines():
    assert InputSanitizer.sanitize_body("hello  \r\nworld\t\n") == "hello\nworld\n"
