import threading

import pytest

from expense_ledger.config import Settings
from expense_ledger.services.minio_client import MinioClient, decode_photo


@pytest.fixture
def minio_client():
    return MinioClient(Settings(minio_endpoint="minio.test:9000", minio_bucket="bills"))


def test_decode_data_url():
    content, content_type = decode_photo("data:image/png;base64,aGVsbG8=")

    assert content == b"hello"
    assert content_type == "image/png"


def test_decode_plain_base64_defaults_to_jpeg():
    content, content_type = decode_photo("aGVsbG8=")

    assert content == b"hello"
    assert content_type == "image/jpeg"


async def test_store_photo_returns_object_url(minio_client, monkeypatch):
    async def fake_upload(image_data, content_type):
        assert image_data == b"hello"
        return "bills/abc.png"

    monkeypatch.setattr(minio_client, "upload_image", fake_upload)

    url = await minio_client.store_photo("data:image/png;base64,aGVsbG8=")

    assert url == "http://minio.test:9000/bills/bills/abc.png"


async def test_public_url_override():
    client = MinioClient(Settings(minio_public_url="https://cdn.example.com/", minio_bucket="bills"))

    assert client.get_image_url("bills/x.jpg") == "https://cdn.example.com/bills/bills/x.jpg"


async def test_invalid_base64_degrades_to_none(minio_client):
    assert await minio_client.store_photo("not base64!!") is None


async def test_upload_failure_degrades_to_none(minio_client, monkeypatch):
    async def broken_upload(image_data, content_type):
        raise ConnectionError("minio unreachable")

    monkeypatch.setattr(minio_client, "upload_image", broken_upload)

    assert await minio_client.store_photo("aGVsbG8=") is None


class RecordingMinio:
    """记录调用及所在线程的 Minio 替身"""

    def __init__(self, bucket_exists=False):
        self.exists = bucket_exists
        self.calls = []

    def bucket_exists(self, bucket_name):
        self.calls.append(("bucket_exists", bucket_name, threading.get_ident()))
        return self.exists

    def make_bucket(self, bucket_name):
        self.calls.append(("make_bucket", bucket_name, threading.get_ident()))
        self.exists = True

    def put_object(self, bucket_name, object_name, data, length, content_type):
        assert (data.read(), length, content_type) == (b"hello", 5, "image/png")
        self.calls.append(("put_object", object_name, threading.get_ident()))


async def test_upload_runs_minio_calls_off_the_event_loop(minio_client):
    fake = RecordingMinio()
    minio_client.client = fake

    object_name = await minio_client.upload_image(b"hello", "image/png")

    assert object_name.startswith("bills/") and object_name.endswith(".png")
    assert [call[0] for call in fake.calls] == ["bucket_exists", "make_bucket", "put_object"]
    loop_thread = threading.get_ident()
    assert all(call[2] != loop_thread for call in fake.calls)


async def test_bucket_is_checked_once(minio_client):
    fake = RecordingMinio(bucket_exists=True)
    minio_client.client = fake

    await minio_client.upload_image(b"hello", "image/png")
    await minio_client.upload_image(b"hello", "image/png")

    assert [call[0] for call in fake.calls] == ["bucket_exists", "put_object", "put_object"]


async def test_store_photo_bytes_returns_object_url(minio_client):
    minio_client.client = RecordingMinio(bucket_exists=True)

    url = await minio_client.store_photo_bytes(b"hello", "image/png")

    assert url.startswith("http://minio.test:9000/bills/bills/")
    assert url.endswith(".png")


async def test_store_photo_bytes_failure_degrades_to_none(minio_client, monkeypatch):
    async def broken_upload(image_data, content_type):
        raise ConnectionError("minio unreachable")

    monkeypatch.setattr(minio_client, "upload_image", broken_upload)

    assert await minio_client.store_photo_bytes(b"hello", "image/png") is None
