"""
Tests for client identity resolution (rate-limit key).
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from jose import jwt

from app.auth import client_address, decode_user_id, resolve_client_identity


def _request(headers: dict | None = None, host: str | None = "192.0.2.10"):
    request = MagicMock()
    request.headers = {k.lower(): v for k, v in (headers or {}).items()}
    if host is None:
        request.client = None
    else:
        request.client.host = host
    return request


def _token(secret: str, sub: str = "user-1", **claims) -> str:
    return jwt.encode({"sub": sub, **claims}, secret, algorithm="HS256")


def test_valid_bearer_token_identifies_user(settings):
    request = _request({"Authorization": f"Bearer {_token(settings.jwt_secret_key)}"})

    assert resolve_client_identity(request, settings) == "user:user-1"


def test_token_signed_with_other_secret_falls_back_to_address(settings):
    request = _request({"Authorization": f"Bearer {_token('someone-else')}"})

    assert resolve_client_identity(request, settings) == "ip:192.0.2.10"


def test_expired_token_falls_back_to_address(settings):
    expired = datetime.now(timezone.utc) - timedelta(hours=1)
    request = _request({"Authorization": f"Bearer {_token(settings.jwt_secret_key, exp=expired)}"})

    assert resolve_client_identity(request, settings) == "ip:192.0.2.10"


def test_no_secret_configured_ignores_tokens(settings):
    token = _token(settings.jwt_secret_key)
    settings.jwt_secret_key = ""

    assert decode_user_id(token, settings) is None


def test_token_without_subject_is_ignored(settings):
    token = jwt.encode({"email": "a@b.c"}, settings.jwt_secret_key, algorithm="HS256")

    assert decode_user_id(token, settings) is None


def test_non_bearer_scheme_is_ignored(settings):
    request = _request({"Authorization": "Basic dXNlcjpwYXNz"})

    assert resolve_client_identity(request, settings) == "ip:192.0.2.10"


def test_forwarded_for_first_hop_wins():
    request = _request({"X-Forwarded-For": "198.51.100.1, 10.0.0.1", "X-Real-IP": "10.0.0.2"})

    assert client_address(request) == "198.51.100.1"


def test_real_ip_used_without_forwarded_for():
    assert client_address(_request({"X-Real-IP": "198.51.100.9"})) == "198.51.100.9"


def test_socket_peer_then_unknown():
    assert client_address(_request()) == "192.0.2.10"
    assert client_address(_request(host=None)) == "unknown"
