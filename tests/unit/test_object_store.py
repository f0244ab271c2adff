import httpx
import pytest
from vjoin.config.models import StorageConfig
from vjoin.domain.errors import UploadError, UploadConflictError
from vjoin.infrastructure.object_store import ObjectStore

CONFIG = StorageConfig(url="https://proj.supabase.co/", key="service-key", bucket="videos")

def make_store(handler, requests=None) -> ObjectStore:
    def _record(request):
        if requests is not None:
            requests.append(request)
        return handler(request)
    return ObjectStore(CONFIG, client=httpx.Client(transport=httpx.MockTransport(_record)))

def test_requires_configuration():
    with pytest.raises(ValueError):
        ObjectStore(StorageConfig())

def test_urls():
    store = make_store(lambda r: httpx.Response(200))
    assert store.object_url("job/final.mp4") == "https://proj.supabase.co/storage/v1/object/videos/job/final.mp4"
    assert store.public_url("job/final.mp4") == (
        "https://proj.supabase.co/storage/v1/object/public/videos/job/final.mp4"
    )

def test_publish_deletes_then_upserts(tmp_path):
    path = tmp_path / "final.mp4"
    path.write_bytes(b"movie")
    requests = []
    store = make_store(lambda r: httpx.Response(404 if r.method == "DELETE" else 200), requests)

    url = store.publish(path, "abc/final.mp4")

    assert url.endswith("/storage/v1/object/public/videos/abc/final.mp4")
    assert [r.method for r in requests] == ["DELETE", "POST"]
    upload = requests[1]
    assert upload.headers["authorization"] == "Bearer service-key"
    assert upload.headers["x-upsert"] == "true"
    assert upload.headers["content-type"] == "video/mp4"
    assert upload.content == b"movie"

def test_delete_never_raises():
    assert make_store(lambda r: httpx.Response(204)).delete("k")
    assert make_store(lambda r: httpx.Response(404)).delete("k")
    assert not make_store(lambda r: httpx.Response(500, text="boom")).delete("k")

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)
    assert not make_store(refuse).delete("k")

def test_upload_conflict(tmp_path):
    path = tmp_path / "final.mp4"
    path.write_bytes(b"movie")
    store = make_store(lambda r: httpx.Response(409, json={"error": "Duplicate"}))
    with pytest.raises(UploadConflictError) as exc:
        store.upload(path, "abc/final.mp4")
    assert exc.value.retryable
    assert exc.value.category == "upload_conflict"

def test_upload_failure(tmp_path):
    path = tmp_path / "final.mp4"
    path.write_bytes(b"movie")
    store = make_store(lambda r: httpx.Response(500, text="storage down"))
    with pytest.raises(UploadError, match="500") as exc:
        store.upload(path, "abc/final.mp4")
    assert not isinstance(exc.value, UploadConflictError)

def test_upload_transport_error(tmp_path):
    path = tmp_path / "final.mp4"
    path.write_bytes(b"movie")

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)
    with pytest.raises(UploadError):
        make_store(refuse).upload(path, "abc/final.mp4")

def test_upload_without_upsert_refuses_overwrite(tmp_path):
    path = tmp_path / "compressed.mp4"
    path.write_bytes(b"movie")
    requests = []
    store = make_store(lambda r: httpx.Response(409, json={"error": "Duplicate"}), requests)
    with pytest.raises(UploadConflictError):
        store.upload(path, "clips/compressed.mp4", upsert=False)
    assert [r.method for r in requests] == ["POST"]
    assert requests[0].headers["x-upsert"] == "false"
