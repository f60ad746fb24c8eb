from io import BytesIO

import pytest
from botocore.exceptions import ClientError
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from campusvibe.storage import proof_object_key, upload_to_r2


class RecordingClient:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.error:
            raise self.error
        self.calls.append((bucket, key, ExtraArgs))


def make_upload(filename="UPI Receipt (1).PNG", content_type="image/png"):
    return UploadFile(file=BytesIO(b"\x89PNG fake"), filename=filename,
                      headers=Headers({"content-type": content_type}))


@pytest.fixture
def r2_env(monkeypatch):
    monkeypatch.setenv("CLOUDFLARE_R2_BUCKET", "proofs")
    monkeypatch.setenv("CLOUDFLARE_PUBLIC_URL", "https://cdn.campus.edu/")


@pytest.mark.parametrize("filename,expected", [
    ("UPI Receipt (1).PNG", "upireceipt_1.png"),
    ("", "proof"),
    ("%%%.jpg", "proof.jpg"),
    ("scan.final.jpeg", "scan_final.jpeg"),
])
def test_proof_object_key_reduces_the_filename(filename, expected):
    key = proof_object_key("abc-123", filename)
    assert key.rsplit("/", 1)[1].split("_", 1)[1] == expected


def test_proof_object_key_is_scoped_to_ticket():
    key = proof_object_key("abc-123", "proof.jpg")
    assert key.startswith("payment-proofs/abc-123/")
    assert key.endswith("_proof.jpg")


def test_upload_returns_public_url(r2_env):
    client = RecordingClient()
    url = upload_to_r2(make_upload(), "payment-proofs/t1/x_proof.png", client=client)
    assert url == "https://cdn.campus.edu/payment-proofs/t1/x_proof.png"
    assert client.calls == [("proofs", "payment-proofs/t1/x_proof.png", {"ContentType": "image/png"})]


def test_non_image_is_rejected(r2_env):
    with pytest.raises(HTTPException) as exc:
        upload_to_r2(make_upload("notes.pdf", "application/pdf"), "k", client=RecordingClient())
    assert exc.value.status_code == 400


def test_storage_errors_map_to_bad_gateway(r2_env):
    error = ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
    with pytest.raises(HTTPException) as exc:
        upload_to_r2(make_upload(), "k", client=RecordingClient(error))
    assert exc.value.status_code == 502


def test_missing_bucket_is_unavailable(monkeypatch):
    monkeypatch.delenv("CLOUDFLARE_R2_BUCKET", raising=False)
    with pytest.raises(HTTPException) as exc:
        upload_to_r2(make_upload(), "k", client=RecordingClient())
    assert exc.value.status_code == 503
