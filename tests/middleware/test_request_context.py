"""Tests for the request context middleware.

Verifies that every response gets an X-Request-ID header (generated or
echoed from the request) and that log records carry the id.
"""

from __future__ import annotations

import logging
import uuid

from fastapi.testclient import TestClient

from coursetrack.middleware.request_context import _RequestContextFilter, request_id_var


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/enrollments/00000000-0000-0000-0000-000000000000/progress")
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_filter_stamps_current_request_id() -> None:
    record = logging.LogRecord("t", logging.INFO, "t.py", 1, "msg", (), None)
    token = request_id_var.set("req-42")
    try:
        _RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-42"  # type: ignore[attr-defined]


def test_filter_defaults_outside_a_request() -> None:
    record = logging.LogRecord("t", logging.INFO, "t.py", 1, "msg", (), None)
    _RequestContextFilter().filter(record)
    assert record.request_id == "-"  # type: ignore[attr-defined]
