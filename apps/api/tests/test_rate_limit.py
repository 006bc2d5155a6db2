"""Tests for rate limit bucketing."""

from uuid import uuid4

from starlette.requests import Request

from callwatch.core.rate_limit import default_limits, rate_limit_key
from callwatch.core.security import create_session_token


def _request(headers: dict[str, str] | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/calls",
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
            "client": ("203.0.113.7", 5000),
        }
    )


def test_session_user_gets_own_bucket():
    user_id = uuid4()
    token = create_session_token(user_id, "caller", 1)

    key = rate_limit_key(_request({"Authorization": f"Bearer {token}"}))

    assert key == f"user:{user_id}"


def test_anonymous_request_keyed_by_address():
    assert rate_limit_key(_request()) == "ip:203.0.113.7"


def test_bad_token_falls_back_to_address():
    key = rate_limit_key(_request({"Authorization": "Bearer not-a-token"}))

    assert key == "ip:203.0.113.7"


def test_limits_disabled_while_testing():
    assert default_limits() == []
