"""
Add-in API client against httpx.MockTransport: auth headers, polling,
direct-to-storage uploads with retry, and the three-step handshake.
"""
import asyncio
import json

import httpx
import pytest

from addin_client import AddinApiError, AddinClient, AddinConfig

BASE_URL = "https://api.lod400.test"
UPLOAD_URL = "https://storage.test/lod400/orders/o-1/abc/model.zip?X-Amz-Signature=sig"


def _client(handler, **config) -> AddinClient:
    config.setdefault("session_token", "lods_token")
    config.setdefault("retry_delay", 0)
    return AddinClient(AddinConfig(BASE_URL, **config), transport=httpx.MockTransport(handler))


def test_requires_a_credential():
    with pytest.raises(ValueError):
        AddinClient(AddinConfig(BASE_URL))


def test_sends_bearer_or_api_key():
    seen = []

    def handler(request):
        seen.append((request.headers.get("authorization"), request.headers.get("x-api-key")))
        return httpx.Response(200, json={"valid": True, "user": {"id": "u1"}})

    async def scenario():
        async with _client(handler) as client:
            await client.validate()
        async with _client(handler, session_token=None, api_key="lod_key") as client:
            await client.validate()

    asyncio.run(scenario())
    assert seen == [("Bearer lods_token", None), (None, "lod_key")]


def test_error_responses_raise_with_server_message():
    def handler(request):
        return httpx.Response(400, json={"message": "Order must be paid before uploading files"})

    async def scenario():
        async with _client(handler) as client:
            await client.get_upload_url("o-1", "model.zip")

    with pytest.raises(AddinApiError) as exc:
        asyncio.run(scenario())
    assert exc.value.status_code == 400
    assert exc.value.message == "Order must be paid before uploading files"


def test_create_order_posts_camel_case():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"order": {"id": "o-1"}, "checkoutUrl": "https://pay"})

    async def scenario():
        async with _client(handler) as client:
            return await client.create_order(5)

    result = asyncio.run(scenario())
    assert bodies == [{"sheetCount": 5}]
    assert result["checkoutUrl"] == "https://pay"


# ── Polling ──────────────────────────────────────────────────────────────


def test_poll_until_paid_returns_once_past_pending():
    statuses = iter(["pending", "pending", "paid"])
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"id": "o-1", "status": next(statuses)})

    async def scenario():
        async with _client(handler) as client:
            return await client.poll_until_paid("o-1", delay=0)

    order = asyncio.run(scenario())
    assert order["status"] == "paid"
    assert calls == ["/api/addin/orders/o-1/status"] * 3


def test_poll_until_paid_gives_up():
    def handler(request):
        return httpx.Response(200, json={"id": "o-1", "status": "pending"})

    async def scenario():
        async with _client(handler) as client:
            await client.poll_until_paid("o-1", max_attempts=3, delay=0)

    with pytest.raises(TimeoutError):
        asyncio.run(scenario())


# ── Uploads ──────────────────────────────────────────────────────────────


def test_upload_file_retries_server_errors_without_api_credentials():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200)

    progress = []

    async def scenario():
        async with _client(handler) as client:
            await client.upload_file(UPLOAD_URL, b"PK\x03\x04data", on_progress=progress.append)

    asyncio.run(scenario())
    assert len(attempts) == 3
    assert all(r.method == "PUT" for r in attempts)
    assert attempts[-1].headers["content-type"] == "application/zip"
    assert "authorization" not in attempts[-1].headers
    assert attempts[-1].content == b"PK\x03\x04data"
    assert progress == [0, 100]


def test_upload_file_retries_transport_errors():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200)

    async def scenario():
        async with _client(handler) as client:
            await client.upload_file(UPLOAD_URL, b"data")

    asyncio.run(scenario())
    assert len(attempts) == 2


def test_upload_file_gives_up_after_max_attempts():
    def handler(request):
        return httpx.Response(500, text="storage down")

    async def scenario():
        async with _client(handler) as client:
            await client.upload_file(UPLOAD_URL, b"data", max_attempts=2)

    with pytest.raises(AddinApiError) as exc:
        asyncio.run(scenario())
    assert exc.value.status_code == 500


def test_upload_package_runs_the_full_handshake(tmp_path):
    package = tmp_path / "model.zip"
    package.write_bytes(b"x" * 2048)
    log = []

    def handler(request):
        log.append((request.method, request.url.path))
        if request.url.path.endswith("/upload-url"):
            assert json.loads(request.content) == {"fileName": "model.zip"}
            return httpx.Response(200, json={"uploadURL": UPLOAD_URL})
        if request.url.host == "storage.test":
            return httpx.Response(200)
        body = json.loads(request.content)
        assert body == {"fileName": "model.zip", "fileSize": 2048, "uploadURL": UPLOAD_URL}
        return httpx.Response(200, json={"success": True, "status": "uploaded", "replayed": False})

    async def scenario():
        async with _client(handler) as client:
            return await client.upload_package("o-1", package)

    result = asyncio.run(scenario())
    assert result["status"] == "uploaded"
    assert log == [
        ("POST", "/api/addin/orders/o-1/upload-url"),
        ("PUT", "/lod400/orders/o-1/abc/model.zip"),
        ("POST", "/api/addin/orders/o-1/upload-complete"),
    ]


def test_get_download_url():
    def handler(request):
        assert request.url.path == "/api/addin/orders/o-1/download-url"
        return httpx.Response(200, json={"downloadURL": "https://storage.test/d", "fileName": "out.zip"})

    async def scenario():
        async with _client(handler) as client:
            return await client.get_download_url("o-1")

    assert asyncio.run(scenario())["fileName"] == "out.zip"
