"""Contract tests for the registry API endpoints."""

from __future__ import annotations

from collections.abc import Callable
import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

from platform_core.api.sml import SmlController
from platform_core.sml.errors import SmlError
from platform_core.sml.errors import SmlErrorCode
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.types import ExecutionContext
from platform_core.sml.types import Visibility

API_PREFIX = "/api/sml"

ADD_SCHEMA = {
    "description": "Add two numbers",
    "params": {
        "a": {"type": "number", "required": True},
        "b": {"type": "number", "required": True},
    },
    "returns": {"type": "number"},
}


def _assert_success_envelope(payload: dict) -> Any:
    assert payload["success"] is True
    assert "data" in payload
    return payload["data"]


def _assert_error_envelope(payload: dict, code: str) -> dict:
    assert payload["success"] is False
    error = payload["error"]
    assert error["code"] == code
    assert isinstance(error["message"], str) and error["message"]
    return error


@pytest.fixture(autouse=True)
def api_registry(registry: SmlRegistry) -> SmlRegistry:
    def explode(params: dict[str, Any], ctx: ExecutionContext) -> None:
        raise RuntimeError("db password is hunter2")

    def whoami(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return {
            "user": ctx.user.model_dump() if ctx.user else None,
            "traceId": ctx.trace_id,
            "requestId": ctx.request_id,
            "ip": ctx.session.ip if ctx.session else None,
        }

    registry.register("math.add", {"handler": lambda params, ctx: params["a"] + params["b"], "schema": ADD_SCHEMA})
    registry.register("debug.whoami", {"handler": whoami, "schema": {"description": "Echo caller"}})
    registry.register("debug.explode", {"handler": explode, "schema": {"description": "Always fails"}})
    registry.register(
        "system.cache.flush",
        {"handler": lambda params, ctx: True, "schema": {"description": "Flush caches"}},
        owner="core:cache",
        visibility=Visibility.ADMIN,
    )
    registry.register(
        "system.jobs.run",
        {"handler": lambda params, ctx: "ran", "schema": {"description": "Run jobs"}},
        visibility=Visibility.INTERNAL,
    )
    registry.declare_event("auth.login", {"description": "User logged in", "type": "domain"})
    registry.lock()
    return registry


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "registryReady": True}


def test_execute_returns_result(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"path": "math.add", "params": {"a": 2, "b": 3}})

    assert response.status_code == 200
    assert _assert_success_envelope(response.json()) == 5


def test_execute_reports_type_violation(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"path": "math.add", "params": {"a": "x", "b": 3}})

    assert response.status_code == 400
    error = _assert_error_envelope(response.json(), "SML_VALIDATION")
    assert error["path"] == "math.add"
    assert "a" in error["message"]
    assert error["errors"] == [{"field": "a", "issue": "Parameter a: expected number, got string"}]


def test_execute_reports_missing_param(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"path": "math.add", "params": {"a": 2}})

    assert response.status_code == 400
    assert "Missing required parameter: b" in response.json()["error"]["message"]


def test_execute_requires_path(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"params": {}})

    assert response.status_code == 400
    _assert_error_envelope(response.json(), "VALIDATION_ERROR")


def test_execute_unknown_path_is_not_found(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"path": "math.divide"})

    assert response.status_code == 404
    _assert_error_envelope(response.json(), "SML_NOT_FOUND")


def test_execute_enforces_visibility(client: TestClient, make_token: Callable[..., str]) -> None:
    anonymous = client.post(f"{API_PREFIX}/execute", json={"path": "system.jobs.run"})
    member = {"authorization": f"Bearer {make_token(roles=['user'])}"}
    admin = {"authorization": f"Bearer {make_token(roles=['admin'])}"}

    assert anonymous.status_code == 403
    _assert_error_envelope(anonymous.json(), "SML_PERMISSION")
    assert client.post(f"{API_PREFIX}/execute", json={"path": "system.jobs.run"}, headers=member).status_code == 200
    assert client.post(f"{API_PREFIX}/execute", json={"path": "system.cache.flush"}, headers=member).status_code == 403
    flushed = client.post(f"{API_PREFIX}/execute", json={"path": "system.cache.flush"}, headers=admin)
    assert _assert_success_envelope(flushed.json()) is True


def test_execute_builds_context_from_request(client: TestClient, make_token: Callable[..., str]) -> None:
    anonymous = client.post(
        f"{API_PREFIX}/execute",
        json={"path": "debug.whoami"},
        headers={"x-trace-id": "trace-abc", "x-request-id": "req-9", "x-forwarded-for": "2.2.2.2, 3.3.3.3"},
    )
    authenticated = client.post(
        f"{API_PREFIX}/execute",
        json={"path": "debug.whoami"},
        headers={"authorization": f"Bearer {make_token(user_id=5, email='ada@example.com', roles=['user'])}"},
    )

    echoed = _assert_success_envelope(anonymous.json())
    assert echoed == {"user": None, "traceId": "trace-abc", "requestId": "req-9", "ip": "2.2.2.2"}
    assert anonymous.headers["x-request-id"] == "req-9"

    echoed = _assert_success_envelope(authenticated.json())
    assert echoed["user"] == {"id": 5, "email": "ada@example.com", "roles": ["user"]}
    assert echoed["traceId"].startswith("trace-")


def test_meta_hides_non_public_operations(client: TestClient) -> None:
    response = client.get(f"{API_PREFIX}/meta")

    data = _assert_success_envelope(response.json())
    assert data["domains"] == ["debug", "math"]
    assert data["events"] == ["auth.login"]
    assert data["stats"] == {"operations": 5, "publicOperations": 4, "events": 1, "locked": True}


def test_meta_includes_admin_operations_on_request(client: TestClient) -> None:
    response = client.get(f"{API_PREFIX}/meta", params={"includeAdmin": "true"})

    data = _assert_success_envelope(response.json())
    assert data["domains"] == ["debug", "math", "system"]
    assert data["tree"]["system"] == {"cache": ["flush"]}


def test_meta_internal_view_requires_admin(client: TestClient, make_token: Callable[..., str]) -> None:
    member = {"authorization": f"Bearer {make_token(roles=['user'])}"}
    admin = {"authorization": f"Bearer {make_token(roles=['admin'])}"}

    as_member = client.get(f"{API_PREFIX}/meta", params={"includeInternal": "true"}, headers=member)
    as_admin = client.get(f"{API_PREFIX}/meta", params={"includeInternal": "true"}, headers=admin)

    assert "system" not in _assert_success_envelope(as_member.json())["domains"]
    assert _assert_success_envelope(as_admin.json())["tree"]["system"] == {"cache": ["flush"], "jobs": ["run"]}


def test_list_children(client: TestClient) -> None:
    root = client.get(f"{API_PREFIX}/list")
    system = client.get(f"{API_PREFIX}/list", params={"path": "system"})

    assert _assert_success_envelope(root.json()) == {"path": "(root)", "children": ["debug", "math", "system"]}
    assert _assert_success_envelope(system.json())["children"] == ["cache", "jobs"]


def test_describe_operation_event_and_namespace(client: TestClient) -> None:
    operation = _assert_success_envelope(client.get(f"{API_PREFIX}/describe", params={"path": "system.cache.flush"}).json())
    event = _assert_success_envelope(client.get(f"{API_PREFIX}/describe", params={"path": "auth.login"}).json())
    namespace = _assert_success_envelope(client.get(f"{API_PREFIX}/describe", params={"path": "system"}).json())

    assert operation["type"] == "operation"
    assert operation["schema"]["description"] == "Flush caches"
    assert operation["owner"] == "core:cache"
    assert operation["visibility"] == "admin"
    assert event == {
        "path": "auth.login",
        "type": "event",
        "schema": {"description": "User logged in", "type": "domain", "payload": None},
    }
    assert namespace == {"path": "system", "type": "namespace", "children": ["cache", "jobs"]}


def test_describe_unknown_and_missing_path(client: TestClient) -> None:
    unknown = client.get(f"{API_PREFIX}/describe", params={"path": "nope"})
    missing = client.get(f"{API_PREFIX}/describe")

    assert unknown.status_code == 404
    assert unknown.json()["error"]["code"] == "NOT_FOUND"
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "VALIDATION_ERROR"


def test_resolve_round_trips_registered_operation(client: TestClient) -> None:
    response = client.get(f"{API_PREFIX}/resolve", params={"path": "math.add"})

    data = _assert_success_envelope(response.json())
    assert data["exists"] is True
    assert data["path"] == ["math", "add"]
    assert data["domain"] == "math"
    assert data["type"] == "operation"
    assert data["visibility"] == "public"
    assert data["schema"]["params"]["a"]["type"] == "number"
    assert data["schema"]["params"]["a"]["required"] is True


def test_resolve_unknown_path(client: TestClient) -> None:
    response = client.get(f"{API_PREFIX}/resolve", params={"path": "math.divide"})

    assert response.status_code == 404


def test_execute_reports_handler_failure(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"path": "debug.explode"})

    assert response.status_code == 500
    error = _assert_error_envelope(response.json(), "SML_EXECUTION")
    assert error["message"] == "Execution failed: debug.explode - db password is hunter2"


@pytest.mark.usefixtures("production")
def test_execute_hides_handler_failure_in_production(client: TestClient) -> None:
    response = client.post(f"{API_PREFIX}/execute", json={"path": "debug.explode"})

    assert response.status_code == 500
    assert _assert_error_envelope(response.json(), "SML_EXECUTION")["message"] == "Execution failed: debug.explode"
    assert "hunter2" not in response.text


@pytest.mark.usefixtures("production")
def test_only_execution_failures_are_masked_in_production(api_registry: SmlRegistry) -> None:
    controller = SmlController(api_registry)

    locked = controller.handle_error(SmlError("Registry is locked", SmlErrorCode.LOCKED, "math.sub"), "Failed")
    failed = controller.handle_error(
        SmlError("Execution failed: math.add - boom", SmlErrorCode.EXECUTION, "math.add"),
        "Failed",
    )

    assert locked.status_code == 503
    assert json.loads(locked.body)["error"]["message"] == "Registry is locked"
    assert failed.status_code == 500
    assert json.loads(failed.body)["error"]["message"] == "Execution failed: math.add"
