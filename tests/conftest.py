"""
Shared pytest fixtures for the LOD 400 platform test suite.

Provides:
    - app: the FastAPI application, imported once against a temp SQLite file
    - reset_db: drop/recreate all tables before every test (autouse)
    - storage / payments: in-memory gateways injected via dependency_overrides
    - client: TestClient (function-scoped)
    - make_user / client_user / other_user / admin_user
    - web_auth / addin_auth: header builders for the two front doors
    - pay / paid_order / uploaded_order / processing_order: lifecycle shortcuts
"""
import asyncio
import hashlib
import hmac
import json
import os
import tempfile
import time
import uuid
from itertools import count
from urllib.parse import quote

# Settings are read at import time: configure the environment first
_DB_DIR = tempfile.mkdtemp(prefix="lod400-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["OTEL_ENABLED"] = "false"
os.environ["PUBLIC_BASE_URL"] = "https://app.lod400.test"
os.environ["UPLOAD_URL_RATE_LIMIT"] = "20/minute"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from shared.config import settings
from shared.config.database import AsyncSessionLocal, Base, engine
from shared.security import create_session_token
from services.auth_service.models import User
from services.auth_service.repository import UserRepository
from services.payment_service.gateway import (
    CheckoutSession,
    StripePaymentGateway,
    get_payment_gateway,
)
from services.transfer_service.gateway import S3StorageGateway, get_storage_gateway

TEST_BUCKET = "lod400-test"
WEBHOOK_SECRET = "whsec_test_secret"


# ── Helpers ──────────────────────────────────────────────────────────────


def run_db(fn):
    """Run `fn(db)` in a fresh AsyncSession and return its result."""

    async def _go():
        async with AsyncSessionLocal() as db:
            return await fn(db)

    return asyncio.run(_go())


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a stripe-signature header the way Stripe does (HMAC-SHA256 over 't.payload')."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(order_id: str, payment_intent: str = "pi_test_123", session_id: str = "cs_test_hook") -> dict:
    return {
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_intent": payment_intent,
                "metadata": {"orderId": order_id, "userId": "ignored"},
            }
        },
    }


# ── Fake gateways ────────────────────────────────────────────────────────


class FakeS3Client:
    """Stands in for boto3's S3 client: presigning is deterministic, no network."""

    def __init__(self):
        self.calls = []
        self.fail = False

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GeneratePresignedUrl")
        self.calls.append((ClientMethod, Params, ExpiresIn))
        return (
            f"https://storage.test/{Params['Bucket']}/{quote(Params['Key'])}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=fake-{ClientMethod}"
        )


class FakePaymentGateway(StripePaymentGateway):
    """Real webhook verification, recorded checkout sessions."""

    def __init__(self):
        super().__init__(secret_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.sessions = []
        self._ids = count(1)

    def create_checkout_session(self, order_id, user_id, sheet_count, total_price_sar, base_url, customer_email=None):
        session_id = f"cs_test_{next(self._ids)}"
        self.sessions.append(
            {
                "order_id": order_id,
                "user_id": user_id,
                "sheet_count": sheet_count,
                "total_price_sar": total_price_sar,
                "base_url": base_url,
                "customer_email": customer_email,
                "session_id": session_id,
            }
        )
        return CheckoutSession(session_id=session_id, url=f"https://checkout.stripe.test/pay/{session_id}")


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    from main import app as application

    return application


@pytest.fixture(autouse=True)
def reset_db():
    async def _reset():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_reset())
    yield


@pytest.fixture()
def s3_client():
    return FakeS3Client()


@pytest.fixture()
def storage(s3_client):
    return S3StorageGateway(s3_client, TEST_BUCKET, expires_in=900)


@pytest.fixture()
def payments():
    return FakePaymentGateway()


@pytest.fixture()
def client(app, storage, payments):
    app.dependency_overrides[get_storage_gateway] = lambda: storage
    app.dependency_overrides[get_payment_gateway] = lambda: payments
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── Users & credentials ──────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    def _make(email=None, is_admin=False, first_name="Test", last_name="User") -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name=last_name,
            is_admin=is_admin,
        )
        return run_db(lambda db: UserRepository.create(db, user))

    return _make


@pytest.fixture()
def client_user(make_user):
    return make_user(email="client@example.com", first_name="Sara")


@pytest.fixture()
def other_user(make_user):
    return make_user(email="other@example.com", first_name="Omar")


@pytest.fixture()
def admin_user(make_user):
    return make_user(email="admin@example.com", is_admin=True, first_name="Admin")


@pytest.fixture()
def web_auth():
    """Cookie header carrying a signed session for `user`."""

    def _headers(user) -> dict:
        token = create_session_token(user.id)
        return {"Cookie": f"{settings.SESSION_COOKIE_NAME}={token}"}

    return _headers


@pytest.fixture()
def addin_auth(client, web_auth):
    """Bearer header for `user`, minted through the settings endpoint."""

    def _headers(user) -> dict:
        res = client.post(
            "/api/user/addin-sessions",
            json={"deviceLabel": "Revit 2024"},
            headers=web_auth(user),
        )
        assert res.status_code == 201
        return {"Authorization": f"Bearer {res.json()['token']}"}

    return _headers


# ── Lifecycle shortcuts ──────────────────────────────────────────────────


@pytest.fixture()
def post_event(client):
    def _post(event: dict, signature: str = None):
        payload = json.dumps(event)
        return client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={
                "Content-Type": "application/json",
                "stripe-signature": signature or sign_payload(payload),
            },
        )

    return _post


@pytest.fixture()
def pay(post_event):
    def _pay(order_id: str, payment_intent: str = "pi_test_123"):
        res = post_event(checkout_completed_event(order_id, payment_intent))
        assert res.status_code == 200
        return res

    return _pay


@pytest.fixture()
def create_order(client, web_auth):
    def _create(user, sheet_count: int = 4) -> dict:
        res = client.post("/api/orders", json={"sheetCount": sheet_count}, headers=web_auth(user))
        assert res.status_code == 201
        return res.json()

    return _create


@pytest.fixture()
def upload_input(client, web_auth):
    """Input handshake as the owner: upload URL, (simulated PUT), confirm."""

    def _upload(user, order_id: str, file_name: str = "tower.zip", file_size: int = 1024):
        headers = web_auth(user)
        res = client.post(f"/api/orders/{order_id}/upload-url", json={"fileName": file_name}, headers=headers)
        assert res.status_code == 200
        upload_url = res.json()["uploadURL"]
        return client.post(
            f"/api/orders/{order_id}/upload-complete",
            json={"fileName": file_name, "fileSize": file_size, "uploadURL": upload_url},
            headers=headers,
        )

    return _upload


@pytest.fixture()
def upload_output(client, web_auth):
    """Output handshake as an admin."""

    def _upload(admin, order_id: str, file_name: str = "tower-lod400.zip", file_size: int = 4096):
        headers = web_auth(admin)
        res = client.post(f"/api/admin/orders/{order_id}/upload-url", json={"fileName": file_name}, headers=headers)
        assert res.status_code == 200
        upload_url = res.json()["uploadURL"]
        return client.post(
            f"/api/admin/orders/{order_id}/upload-complete",
            json={"fileName": file_name, "fileSize": file_size, "uploadURL": upload_url},
            headers=headers,
        )

    return _upload


@pytest.fixture()
def paid_order(client_user, create_order, pay) -> dict:
    order = create_order(client_user, sheet_count=4)
    pay(order["id"])
    return order


@pytest.fixture()
def uploaded_order(client_user, paid_order, upload_input) -> dict:
    res = upload_input(client_user, paid_order["id"])
    assert res.status_code == 200
    return paid_order


@pytest.fixture()
def processing_order(admin_user, uploaded_order, upload_output) -> dict:
    res = upload_output(admin_user, uploaded_order["id"])
    assert res.status_code == 200
    return uploaded_order
