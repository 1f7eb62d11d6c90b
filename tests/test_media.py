import io
import logging
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi import UploadFile
from starlette.datastructures import Headers

from errors import PersistenceError, UploadError, ValidationError
from media import IMAGE, RAW, MediaRelay, read_upload, upload_then_commit


def upload_file(content, content_type):
    return UploadFile(file=io.BytesIO(content), filename="f", headers=Headers({"content-type": content_type}))


def client_error(op):
    return ClientError({"Error": {"Code": "500", "Message": "boom"}}, op)


def test_read_upload_accepts_pdf(settings):
    assert read_upload(upload_file(b"%PDF-1.4", "application/pdf"), RAW, settings) == b"%PDF-1.4"


def test_read_upload_rejects_wrong_type_and_empty(settings):
    with pytest.raises(ValidationError):
        read_upload(upload_file(b"x", "image/png"), RAW, settings)
    with pytest.raises(ValidationError):
        read_upload(upload_file(b"x", "application/pdf"), IMAGE, settings)
    with pytest.raises(ValidationError, match="empty"):
        read_upload(upload_file(b"", "application/pdf"), RAW, settings)
    with pytest.raises(ValidationError, match="Please upload"):
        read_upload(None, RAW, settings)


def test_read_upload_enforces_size(settings):
    settings.max_document_bytes = 4
    with pytest.raises(ValidationError, match="too large"):
        read_upload(upload_file(b"%PDF-1.4", "application/pdf"), RAW, settings)


def test_upload_failure_raises_upload_error():
    s3 = MagicMock()
    s3.put_object.side_effect = client_error("PutObject")
    relay = MediaRelay(bucket="b", client=s3)
    with pytest.raises(UploadError):
        relay.upload(b"data", "lessons", RAW, "application/pdf")


def test_upload_without_base_url_uses_bucket_url():
    relay = MediaRelay(bucket="b", prefix="app/", client=MagicMock())
    stored = relay.upload(b"data", "lessons", RAW, "application/pdf")
    assert stored.public_id.startswith("lessons/") and stored.public_id.endswith(".pdf")
    assert stored.url == f"https://b.s3.amazonaws.com/app/{stored.public_id}"


def test_discard_reports_failure_without_raising():
    s3 = MagicMock()
    s3.delete_object.side_effect = client_error("DeleteObject")
    relay = MediaRelay(bucket="b", client=s3)
    assert relay.discard("lessons/x.pdf") is False
    assert relay.discard("") is True


def test_commit_failure_deletes_uploaded_file():
    s3 = MagicMock()
    relay = MediaRelay(bucket="b", client=s3)

    def commit(stored):
        raise RuntimeError("db down")

    with pytest.raises(PersistenceError, match="Failed to save") as excinfo:
        upload_then_commit(relay, b"data", "lessons", RAW, "application/pdf", commit, "Failed to save lesson")
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    key = s3.put_object.call_args.kwargs["Key"]
    s3.delete_object.assert_called_once_with(Bucket="b", Key=key)


def test_failed_compensation_is_logged_and_original_error_kept(caplog):
    s3 = MagicMock()
    s3.delete_object.side_effect = client_error("DeleteObject")
    relay = MediaRelay(bucket="b", client=s3)

    def commit(stored):
        raise RuntimeError("db down")

    with caplog.at_level(logging.CRITICAL, logger="media"):
        with pytest.raises(PersistenceError) as excinfo:
            upload_then_commit(relay, b"data", "lessons", RAW, "application/pdf", commit, "Failed to save lesson")
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert any("orphaned" in r.message for r in caplog.records if r.levelno == logging.CRITICAL)


def test_local_store_round_trip(tmp_path):
    relay = MediaRelay(upload_dir=str(tmp_path))
    stored = relay.upload(b"img", "profile_logos", IMAGE, "image/png")
    assert stored.url == f"/uploads/{stored.public_id}"
    assert (tmp_path / stored.public_id).read_bytes() == b"img"
    relay.delete(stored.public_id, IMAGE)
    assert not (tmp_path / stored.public_id).exists()
