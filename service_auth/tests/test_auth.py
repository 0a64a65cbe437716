"""
Tests for Auth service.
"""

import pytest
from fastapi.testclient import TestClient

from ascent_common.config import ServiceConfig
from ascent_common.test_helpers import BOT_TOKEN, CredentialFactory, FakeKeySetSource
from service_auth.app.jwks.client import KeySetFetchError
from service_auth.app.main import AuthService, create_app

IDENTITY_URL = "https://identity.test/auth/v1"


@pytest.fixture(scope="module")
def rsa_key():
    return CredentialFactory.create_rsa_key("rsa-1")


@pytest.fixture
def config():
    return ServiceConfig("auth", 8010, bot_token=BOT_TOKEN, identity_base_url=IDENTITY_URL)


@pytest.fixture
def key_source(rsa_key):
    return FakeKeySetSource(CredentialFactory.create_jwks(rsa_key))


@pytest.fixture
def client(config, key_source):
    """Create test client."""
    app = create_app(config, key_source)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def init_data():
    return CredentialFactory.create_init_data(CredentialFactory.create_users()[0])


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "auth"
    assert data["version"] == "1.0.0"


def test_health_check(client, key_source):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "auth"
    assert data["status"] == "ok"
    assert data["dependencies"] == {"jwks": "ok"}


def test_health_check_degraded_when_key_set_unreachable(client, key_source):
    """Test health reports the key-set dependency failing."""
    key_source.error = KeySetFetchError("down")

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["dependencies"] == {"jwks": "error"}


def test_metrics_endpoint(client, init_data):
    """Test Prometheus exposition includes verification counters."""
    client.post("/auth/verify", json={"initData": init_data})

    response = client.get("/metrics")

    assert response.status_code == 200
    line = next(l for l in response.text.splitlines() if l.startswith("auth_verifications_total{"))
    assert 'scheme="tma"' in line
    assert 'outcome="authenticated"' in line
    assert line.endswith(" 1.0")


def test_verify_init_data(client, init_data):
    """Test initData validation endpoint."""
    response = client.post("/auth/verify", json={"initData": init_data})

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["user_id"] == "42"
    assert data["scheme"] == "tma"
    assert data["issued_at"]


def test_verify_init_data_without_user(client):
    """Test initData without a user is still a valid signature."""
    raw = CredentialFactory.create_init_data(None)

    response = client.post("/auth/verify", json={"initData": raw})

    assert response.status_code == 200
    assert response.json()["user_id"] is None


def test_verify_init_data_missing(client):
    """Test empty initData is a validation error."""
    response = client.post("/auth/verify", json={})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_verify_init_data_tampered(client, init_data):
    """Test tampered initData is forbidden and the credential is not echoed."""
    tampered = init_data[:-1] + ("0" if init_data[-1] != "0" else "1")

    response = client.post("/auth/verify", json={"initData": tampered})

    assert response.status_code == 403
    data = response.json()
    assert data["code"] == "SIGNATURE_MISMATCH"
    assert data["message"] == "Invalid credential"
    assert tampered not in response.text


def test_verify_init_data_expired(client):
    """Test stale initData is rejected as expired."""
    raw = CredentialFactory.create_init_data(CredentialFactory.create_users()[0], auth_date=1)

    response = client.post("/auth/verify", json={"initData": raw})

    assert response.status_code == 401
    assert response.json()["code"] == "EXPIRED"


def test_me_with_bearer_token(client, rsa_key):
    """Test /auth/me authenticates a bearer token."""
    token = CredentialFactory.create_token(rsa_key, subject="user-123")

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "user-123"
    assert data["scheme"] == "bearer"


def test_me_with_init_data(client, init_data):
    """Test /auth/me authenticates tma credentials."""
    response = client.get("/auth/me", headers={"Authorization": f"tma {init_data}"})

    assert response.status_code == 200
    assert response.json()["user_id"] == "42"
    assert response.json()["scheme"] == "tma"


def test_me_without_credentials(client):
    """Test /auth/me requires credentials."""
    response = client.get("/auth/me", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 401
    data = response.json()
    assert data["code"] == "MISSING_CREDENTIAL"
    assert data["request_id"] == "req-123"
    assert response.headers["X-Request-ID"] == "req-123"


def test_me_unknown_kid(client, rsa_key):
    """Test tokens for unpublished keys are unauthorized."""
    token = CredentialFactory.create_token(rsa_key, headers={"kid": "rotated"})

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["code"] == "KEY_NOT_FOUND"


def test_me_key_fetch_failure(client, key_source, rsa_key):
    """Test an unreachable key set is a server-side failure."""
    key_source.error = KeySetFetchError("down")
    token = CredentialFactory.create_token(rsa_key)

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 500
    assert response.json()["code"] == "KEY_FETCH_FAILED"


def test_key_source_closed_on_shutdown(config, key_source):
    """Test the key cache is released when the app stops."""
    with TestClient(create_app(config, key_source)):
        pass

    assert key_source.closed


def test_warmup_on_startup(key_source):
    """Test keys are loaded at startup when warmup is enabled."""
    config = ServiceConfig("auth", 8010, bot_token=BOT_TOKEN, identity_base_url=IDENTITY_URL, jwks_warmup=True)

    with TestClient(create_app(config, key_source)):
        assert key_source.fetch_count == 1


class TestUnconfiguredService:
    """Test cases for a service started without auth settings."""

    @pytest.fixture
    def service(self):
        config = ServiceConfig("auth", 8010, bot_token=None, identity_base_url=None)
        return AuthService(config)

    def test_missing_settings_reported(self, service):
        """Test missing settings are detected."""
        assert service.config.missing_auth_settings() == ["bot_token", "identity_base_url"]
        assert service.key_cache is None

    def test_init_data_rejected_as_misconfigured(self, service, init_data):
        """Test no initData is accepted without a bot token."""
        client = TestClient(service.app)

        response = client.post("/auth/verify", json={"initData": init_data})

        assert response.status_code == 500
        assert response.json()["code"] == "SERVER_MISCONFIGURATION"

    def test_bearer_rejected_as_misconfigured(self, service, rsa_key):
        """Test no token is accepted without an identity backend."""
        client = TestClient(service.app)
        token = CredentialFactory.create_token(rsa_key)

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 500
        assert response.json()["code"] == "SERVER_MISCONFIGURATION"

    def test_health_reports_unconfigured(self, service):
        """Test health shows the key set as unconfigured."""
        data = TestClient(service.app).get("/health").json()

        assert data["status"] == "degraded"
        assert data["dependencies"] == {"jwks": "unconfigured"}
