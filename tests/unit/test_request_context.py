"""Unit tests for request context propagation, identity and client IP resolution."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from fastapi import FastAPI
from fastapi.testclient import TestClient
import jwt

from platform_core.core.context import RequestContext
from platform_core.core.context import context_manager
from platform_core.core.context import get_current_user
from platform_core.core.identity import anonymous_user
from platform_core.core.identity import resolve_client_ip
from platform_core.core.identity import resolve_identity
from platform_core.core.middleware import RequestContextMiddleware
from platform_core.core.middleware import RequestLoggerMiddleware

SECRET = "unit-test-secret-0123456789abcdef0123"


def test_context_is_visible_across_awaits_and_isolated_between_tasks() -> None:
    async def handle(request_number: int) -> tuple[int, str | None]:
        context = RequestContext()
        context.set("userId", f"user-{request_number}")

        async def nested() -> str | None:
            await asyncio.sleep(0.01 * (3 - request_number))
            current = context_manager.current()
            return current.get("userId") if current else None

        return request_number, await context_manager.run_async(nested, context)

    async def main() -> list[tuple[int, str | None]]:
        return await asyncio.gather(*(handle(number) for number in range(3)))

    results = asyncio.run(main())

    assert results == [(0, "user-0"), (1, "user-1"), (2, "user-2")]
    assert context_manager.current() is None


def test_bind_resets_previous_context() -> None:
    outer = RequestContext()
    inner = RequestContext()

    with context_manager.bind(outer):
        with context_manager.bind(inner):
            assert context_manager.current() is inner
        assert context_manager.current() is outer
    assert context_manager.current() is None


def test_snapshot_includes_bindings_and_timing() -> None:
    context = RequestContext()
    context.set("path", "/api/sml/meta")

    snapshot = context.snapshot()

    assert snapshot["contextId"] == context.id
    assert snapshot["path"] == "/api/sml/meta"
    assert snapshot["duration"] >= 0


def test_logging_metadata_is_empty_without_context() -> None:
    assert context_manager.logging_metadata() == {}


def test_client_ip_prefers_cloudflare_header() -> None:
    headers = {"cf-connecting-ip": "1.1.1.1", "x-forwarded-for": "2.2.2.2", "x-real-ip": "4.4.4.4"}

    assert resolve_client_ip(headers, "9.9.9.9") == "1.1.1.1"


def test_client_ip_uses_first_forwarded_address() -> None:
    assert resolve_client_ip({"x-forwarded-for": "2.2.2.2, 3.3.3.3"}, "9.9.9.9") == "2.2.2.2"


def test_client_ip_falls_back_to_real_ip_socket_and_unknown() -> None:
    assert resolve_client_ip({"x-real-ip": "4.4.4.4"}, "9.9.9.9") == "4.4.4.4"
    assert resolve_client_ip({}, "9.9.9.9") == "9.9.9.9"
    assert resolve_client_ip({}, None) == "unknown"


def test_client_ip_skips_headers_with_an_empty_first_entry() -> None:
    assert resolve_client_ip({"x-forwarded-for": ", 2.2.2.2", "x-real-ip": "4.4.4.4"}, "9.9.9.9") == "4.4.4.4"
    assert resolve_client_ip({"cf-connecting-ip": " ", "x-forwarded-for": " ,"}, "9.9.9.9") == "9.9.9.9"


def test_identity_is_anonymous_without_valid_credentials() -> None:
    expired = jwt.encode({"id": 1, "exp": 1}, SECRET, algorithm="HS256")
    wrong_key = jwt.encode({"id": 1}, SECRET + "-other", algorithm="HS256")

    for header in (None, "", "Basic abc", "Bearer ", "Bearer not-a-token", f"Bearer {expired}", f"Bearer {wrong_key}"):
        assert resolve_identity(header, SECRET) == anonymous_user()


def test_identity_requires_secret_and_id_claim() -> None:
    token = jwt.encode({"id": 1}, SECRET, algorithm="HS256")
    no_id = jwt.encode({"email": "a@example.com"}, SECRET, algorithm="HS256")

    assert resolve_identity(f"Bearer {token}", "")["isAnonymous"] is True
    assert resolve_identity(f"Bearer {no_id}", SECRET)["isAnonymous"] is True


def test_identity_resolves_verified_user() -> None:
    token = jwt.encode({"id": 42, "email": "ada@example.com", "roles": ["admin"]}, SECRET, algorithm="HS256")

    user = resolve_identity(f"Bearer {token}", SECRET)

    assert user == {
        "id": 42,
        "email": "ada@example.com",
        "roles": ["admin"],
        "abilityRules": [],
        "isAnonymous": False,
    }


def _build_client() -> TestClient:
    app = FastAPI()

    @app.get("/whoami")
    async def whoami() -> dict:
        context = context_manager.current()
        await asyncio.sleep(0)
        return {
            "user": get_current_user(),
            "ipAddress": context.get("ipAddress"),
            "requestId": context.get("requestId"),
            "userAgent": context.get("userAgent"),
        }

    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(RequestContextMiddleware)
    return TestClient(app)


def test_middleware_binds_anonymous_context() -> None:
    client = _build_client()

    response = client.get(
        "/whoami",
        headers={"x-forwarded-for": "2.2.2.2, 3.3.3.3", "x-request-id": "req-1", "user-agent": ""},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["user"]["isAnonymous"] is True
    assert payload["user"]["roles"] == ["anonymous"]
    assert payload["ipAddress"] == "2.2.2.2"
    assert payload["requestId"] == "req-1"
    assert payload["userAgent"] == "unknown"
    assert response.headers["x-request-id"] == "req-1"


def test_middleware_binds_authenticated_user(make_token: Callable[..., str]) -> None:
    client = _build_client()

    response = client.get("/whoami", headers={"authorization": f"Bearer {make_token(user_id=7, roles=['editor'])}"})

    user = response.json()["user"]
    assert user["id"] == 7
    assert user["roles"] == ["editor"]
    assert user["isAnonymous"] is False
    assert response.headers["x-request-id"]
