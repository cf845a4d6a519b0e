from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI, status
from pydantic import BaseModel

from project_tracker.errors import ApplicationError, ConflictError

pytestmark = pytest.mark.asyncio


async def test_application_error_response_schema(server_app: FastAPI, server_client: httpx.AsyncClient) -> None:
    @server_app.get("/error/application")
    async def trigger_application_error() -> None:  # pragma: no cover - defined in test
        raise ApplicationError(
            "Example failure",
            code="example_error",
            status_code=status.HTTP_418_IM_A_TEAPOT,
            details={"foo": "bar"},
        )

    response = await server_client.get("/error/application")

    assert response.status_code == status.HTTP_418_IM_A_TEAPOT
    request_id = response.headers["X-Request-ID"]
    assert response.json() == {
        "error": "Example failure",
        "code": "example_error",
        "details": {"foo": "bar", "request_id": request_id},
    }


async def test_conflict_error_keeps_client_request_id(
    server_app: FastAPI, server_client: httpx.AsyncClient
) -> None:
    @server_app.get("/error/conflict")
    async def trigger_conflict() -> None:  # pragma: no cover - defined in test
        raise ConflictError("Already there")

    response = await server_client.get("/error/conflict", headers={"X-Request-ID": "op-1"})

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.headers["X-Request-ID"] == "op-1"
    assert response.json()["details"] == {"request_id": "op-1"}


async def test_validation_error_response_schema(server_app: FastAPI, server_client: httpx.AsyncClient) -> None:
    class ExamplePayload(BaseModel):
        name: str

    @server_app.post("/error/validation")
    async def create_item(_: ExamplePayload) -> None:  # pragma: no cover - defined in test
        return None

    response = await server_client.post("/error/validation", json={})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    payload = response.json()
    assert payload["code"] == "validation_error"
    assert payload["error"] == "Request validation failed."
    assert payload["details"]["errors"]
    assert payload["details"]["request_id"] == response.headers["X-Request-ID"]


async def test_not_found_error_response_schema(server_client: httpx.AsyncClient) -> None:
    response = await server_client.get("/error/not-found")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    payload = response.json()
    assert payload["code"] == "not_found"
    assert payload["error"]
    assert payload["details"]["request_id"] == response.headers["X-Request-ID"]


async def test_method_not_allowed(server_client: httpx.AsyncClient) -> None:
    response = await server_client.patch("/health")

    assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
    assert response.json()["code"] == "method_not_allowed"


async def test_unhandled_error_response_schema(server_app: FastAPI, server_client: httpx.AsyncClient) -> None:
    @server_app.get("/error/unhandled")
    async def trigger_unhandled() -> None:  # pragma: no cover - defined in test
        raise RuntimeError("boom")

    response = await server_client.get("/error/unhandled")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    payload = response.json()
    assert payload["code"] == "server_error"
    assert payload["error"] == "Internal server error."
    assert "boom" not in response.text
