import logging

from fastapi.testclient import TestClient

from wefix.application.services.account_service import AccountVerificationService
from wefix.application.services.verification_service import VerificationService
from wefix.dependencies import get_account_service
from wefix.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from wefix.infrastructure.verification.memory_store import InMemoryVerificationStore
from wefix.main import app
from wefix.utils import decode_jwt_token

from test_account_service import FakeUserRepo, FakeNotifier

PHONE = "+94712345678"


def make_client(send_max_per_window=5):
    repo = FakeUserRepo()
    notifier = FakeNotifier()
    verification = VerificationService(store=InMemoryVerificationStore(), notifier=notifier)
    accounts = AccountVerificationService(user_repo=repo, verification=verification,
                                          limiter=InMemoryRateLimiter(),
                                          send_max_per_window=send_max_per_window)
    app.dependency_overrides[get_account_service] = lambda: accounts
    return TestClient(app), repo, notifier


def register(client, phone="0712345678"):
    return client.post("/auth/register", json={
        "name": "Kamal Perera",
        "email": "Kamal@Example.com",
        "phone": phone,
        "password": "secret1",
        "user_type": "provider",
    })


def teardown_function():
    app.dependency_overrides.clear()


def test_register_normalizes_phone_and_hides_code():
    client, repo, notifier = make_client()
    resp = register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["phone"] == PHONE
    assert body["data"]["user"]["status"] == "pending_verification"
    assert body["data"]["user"]["email"] == "kamal@example.com"
    assert "otp" not in body["data"]
    assert PHONE in notifier.codes


def test_verify_flow_activates_account_and_issues_token():
    client, repo, notifier = make_client()
    register(client)
    resp = client.post("/auth/otp/verify", json={"phone": PHONE, "otp": notifier.codes[PHONE]})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["phone_verified"] is True
    assert data["user"]["status"] == "active"
    assert decode_jwt_token(data["access_token"])["sub"] == data["user"]["id"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["user"]["id"] == data["user"]["id"]


def test_wrong_code_returns_error_envelope():
    client, repo, notifier = make_client()
    register(client)
    wrong = "000000" if notifier.codes[PHONE] != "000000" else "111111"
    resp = client.post("/auth/otp/verify", json={"phone": PHONE, "otp": wrong})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Invalid OTP. 2 attempts remaining."
    assert body["data"] == {"reason": "MISMATCH", "remaining_attempts": 2}


def test_resend_inside_cooldown_is_rejected():
    client, _, _ = make_client()
    register(client)
    resp = client.post("/auth/otp/resend", json={"phone": PHONE})
    assert resp.status_code == 429
    assert resp.json()["data"]["reason"] == "TOO_SOON"
    assert "retry-after" in resp.headers


def test_send_for_unknown_phone_is_404():
    client, _, _ = make_client()
    resp = client.post("/auth/otp/send", json={"phone": PHONE})
    assert resp.status_code == 404
    assert resp.json()["error"] == "User not found"


def test_send_is_capped_per_phone():
    client, _, _ = make_client(send_max_per_window=3)
    register(client)
    assert client.post("/auth/otp/send", json={"phone": PHONE}).status_code == 200
    assert client.post("/auth/otp/send", json={"phone": PHONE}).status_code == 200
    resp = client.post("/auth/otp/send", json={"phone": PHONE})
    assert resp.status_code == 429
    assert resp.json()["data"]["reason"] == "RATE_LIMIT_EXCEEDED"


def test_repeated_unverified_logins_stay_under_send_cap():
    client, _, notifier = make_client(send_max_per_window=5)
    register(client)
    for _ in range(20):
        resp = client.post("/auth/login", json={"email": "kamal@example.com", "password": "secret1"})
        assert resp.status_code == 403
        assert resp.json()["data"]["verification_required"] is True
    assert len(notifier.sent) <= 5


def test_invalid_phone_is_rejected_before_service():
    client, _, notifier = make_client()
    resp = client.post("/auth/otp/send", json={"phone": "12"})
    assert resp.status_code == 422
    assert notifier.codes == {}


def test_login_for_unverified_account_requires_verification():
    client, _, notifier = make_client()
    register(client)
    resp = client.post("/auth/login", json={"email": "kamal@example.com", "password": "secret1"})
    assert resp.status_code == 403
    assert resp.json()["data"]["verification_required"] is True

    client.post("/auth/otp/verify", json={"phone": PHONE, "otp": notifier.codes[PHONE]})
    resp = client.post("/auth/login", json={"email": "kamal@example.com", "password": "secret1"})
    assert resp.status_code == 200
    assert resp.json()["data"]["token_type"] == "bearer"


def test_me_requires_token():
    client, _, _ = make_client()
    assert client.get("/auth/me").status_code == 401


def test_health():
    client, _, _ = make_client()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["service"] == "WeFix API"


def test_request_log_omits_phone_and_code(caplog):
    client, _, notifier = make_client()
    register(client)
    code = notifier.codes[PHONE]
    caplog.set_level(logging.INFO, logger="wefix.middleware")
    resp = client.post("/auth/otp/verify", json={"phone": PHONE, "otp": code},
                       headers={"X-Request-ID": "req-42"})
    assert resp.status_code == 200
    assert resp.headers["x-request-id"] == "req-42"
    assert resp.headers["cache-control"] == "no-store"
    assert "POST /auth/otp/verify -> 200" in caplog.text
    assert code not in caplog.text
    assert PHONE not in caplog.text
