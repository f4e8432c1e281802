"""
Tests for the request pipeline: stage order, short-circuiting and headers.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_tasks.app.main import TasksService
from service_tasks.app.pipeline import (
    CredentialGate,
    MethodBlocklist,
    OriginGate,
    RateLimitGate,
    RequestLogger,
)
from shared.test_helpers import (
    TEST_CLIENT_HOST,
    FakeClock,
    auth_headers,
    make_test_config,
)


def _stage(service: TasksService, stage_type):
    return next(stage for stage in service.stages if isinstance(stage, stage_type))


class TestPipelineOrder:
    """Stages run in a fixed order."""

    def test_stage_order(self):
        """Test the pipeline is origin, credential, logger, rate limit, blocklist."""
        service = TasksService(config=make_test_config())

        assert [type(stage) for stage in service.stages] == [
            OriginGate,
            CredentialGate,
            RequestLogger,
            RateLimitGate,
            MethodBlocklist,
        ]


class TestAccessGates:
    """Origin and credential gates in front of every route."""

    @pytest.fixture
    def service(self):
        return TasksService(config=make_test_config(), clock=FakeClock())

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    @pytest.fixture
    def off_origin_service(self):
        """Service whose trusted port does not match the test client."""
        return TasksService(config=make_test_config(trusted_port=3001), clock=FakeClock())

    def test_off_origin_forbidden_even_with_valid_key(self, off_origin_service):
        """Test non-loopback callers on other ports are rejected first."""
        client = TestClient(off_origin_service.app)

        response = client.get("/tareas", headers=auth_headers())

        assert response.status_code == 403
        assert response.json() == {"error": "Acceso solo permitido desde 127.0.0.1 o puerto 3001"}

    def test_off_origin_checked_before_credential(self, off_origin_service):
        """Test a missing key on a bad origin still yields 403."""
        client = TestClient(off_origin_service.app)

        response = client.get("/tareas")

        assert response.status_code == 403

    def test_missing_key_unauthorized(self, client):
        """Test requests without x-api-key get 401."""
        response = client.get("/tareas")

        assert response.status_code == 401
        assert response.json() == {"error": "Falta la clave x-api-key en los headers"}

    def test_wrong_key_forbidden(self, client):
        """Test requests with a wrong x-api-key get 403."""
        response = client.get("/tareas", headers=auth_headers("wrong"))

        assert response.status_code == 403
        assert response.json() == {"error": "Clave x-api-key incorrecta"}

    def test_valid_request_passes(self, client):
        """Test an allowed origin with the right key reaches the handler."""
        response = client.get("/tareas", headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == []

    def test_gates_apply_to_unknown_routes(self, client):
        """Test gate rejections precede routing."""
        response = client.get("/no-existe")
        assert response.status_code == 401

    def test_rejected_requests_skip_logger_and_rate_limiter(self, service, client):
        """Test gate rejections never reach the logger or the limiter."""
        request_logger = _stage(service, RequestLogger)
        request_logger.logger = MagicMock()

        client.get("/tareas")
        client.get("/tareas", headers=auth_headers("wrong"))

        request_logger.logger.info.assert_not_called()
        assert service.rate_limiter.remaining(TEST_CLIENT_HOST) == service.rate_limiter.max_requests

    def test_off_origin_paths_share_one_endpoint_label(self, off_origin_service):
        """Test rejected traffic to arbitrary paths adds no per-path series."""
        client = TestClient(off_origin_service.app)

        for i in range(50):
            assert client.get(f"/random-{i}").status_code == 403

        endpoints = {
            sample.labels["endpoint"]
            for metric in off_origin_service.metrics.registry.collect()
            for sample in metric.samples
            if sample.name == "http_requests_total"
        }
        assert endpoints == {"unmatched"}
        assert off_origin_service.metrics.registry.get_sample_value(
            "http_requests_total", {"method": "GET", "endpoint": "unmatched", "status_code": "403"}
        ) == 50.0

    def test_matched_routes_labelled_by_template(self, client, service):
        """Test admitted requests are labelled with the route template."""
        client.put("/tareas/999", json={"completada": True}, headers=auth_headers())
        client.get("/no-existe", headers=auth_headers())

        registry = service.metrics.registry
        assert registry.get_sample_value(
            "http_requests_total", {"method": "PUT", "endpoint": "/tareas/{task_id}", "status_code": "404"}
        ) == 1.0
        assert registry.get_sample_value(
            "http_requests_total", {"method": "GET", "endpoint": "unmatched", "status_code": "404"}
        ) == 1.0

    def test_rejections_recorded_in_metrics(self, service, client):
        """Test each rejecting stage is counted."""
        client.get("/tareas")
        client.get("/tareas", headers=auth_headers("wrong"))

        registry = service.metrics.registry
        assert registry.get_sample_value(
            "pipeline_rejections_total", {"stage": "credential", "status_code": "401"}
        ) == 1.0
        assert registry.get_sample_value(
            "pipeline_rejections_total", {"stage": "credential", "status_code": "403"}
        ) == 1.0


class TestRequestLogger:
    """Logging of requests that passed the gates."""

    def test_logs_method_url_and_time(self):
        """Test the logger records method, URL with query and arrival time."""
        service = TasksService(config=make_test_config(), clock=FakeClock())
        request_logger = _stage(service, RequestLogger)
        request_logger.logger = MagicMock()
        client = TestClient(service.app)

        client.get("/tareas?orden=asc", headers=auth_headers())

        request_logger.logger.info.assert_called_once_with(
            "Request received",
            method="GET",
            url="/tareas?orden=asc",
            received_at="2025-08-29 21:15:33",
        )

    def test_blocked_methods_are_still_logged(self):
        """Test the logger runs before the method blocklist."""
        service = TasksService(config=make_test_config(), clock=FakeClock())
        request_logger = _stage(service, RequestLogger)
        request_logger.logger = MagicMock()
        client = TestClient(service.app)

        client.patch("/tareas", headers=auth_headers())

        assert request_logger.logger.info.call_count == 1


class TestRateLimiting:
    """Sliding-window limiting through HTTP."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def service(self, clock):
        return TasksService(config=make_test_config(rate_limit_max_requests=5), clock=clock)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_sixth_request_rejected(self, client):
        """Test five requests pass and the sixth gets 429."""
        for _ in range(5):
            assert client.get("/tareas", headers=auth_headers()).status_code == 200

        response = client.get("/tareas", headers=auth_headers())

        assert response.status_code == 429
        assert response.json() == {"error": "Demasiadas peticiones, intente más tarde"}
        assert response.headers["Retry-After"] == "60"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_admitted_after_window(self, client, clock):
        """Test the client is admitted again after the window elapses."""
        for _ in range(5):
            client.get("/tareas", headers=auth_headers())
        assert client.get("/tareas", headers=auth_headers()).status_code == 429

        clock.advance(61)

        assert client.get("/tareas", headers=auth_headers()).status_code == 200

    def test_rate_limit_headers(self, client):
        """Test admitted responses report the remaining budget."""
        response = client.get("/tareas", headers=auth_headers())

        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_limit_applies_across_routes(self, client):
        """Test the bucket is per client, not per route."""
        client.get("/", headers=auth_headers())
        client.post("/tareas", json={"titulo": "Tarea limitada"}, headers=auth_headers())
        client.get("/tareas", headers=auth_headers())
        client.delete("/tareas/completed", headers=auth_headers())
        client.get("/health", headers=auth_headers())

        assert client.get("/tareas", headers=auth_headers()).status_code == 429

    def test_blocked_methods_consume_budget(self, client):
        """Test the limiter runs before the method blocklist."""
        for _ in range(5):
            assert client.patch("/tareas", headers=auth_headers()).status_code == 405

        assert client.patch("/tareas", headers=auth_headers()).status_code == 429

    def test_ports_of_one_host_share_a_bucket(self):
        """Test the bucket is keyed by address, so other ports do not reset it."""
        service = TasksService(config=make_test_config(rate_limit_max_requests=2), clock=FakeClock())
        first_port = TestClient(service.app, client=("127.0.0.1", 1111))
        second_port = TestClient(service.app, client=("127.0.0.1", 2222))

        assert first_port.get("/tareas", headers=auth_headers()).status_code == 200
        assert second_port.get("/tareas", headers=auth_headers()).status_code == 200
        response = second_port.get("/tareas", headers=auth_headers())

        assert response.status_code == 429
        assert first_port.get("/tareas", headers=auth_headers()).status_code == 429
        assert service.rate_limiter.remaining("127.0.0.1") == 0

    def test_rejected_credentials_do_not_consume_budget(self, client):
        """Test unauthenticated traffic leaves the window untouched."""
        for _ in range(10):
            client.get("/tareas", headers=auth_headers("wrong"))

        assert client.get("/tareas", headers=auth_headers()).status_code == 200


class TestMethodBlocklist:
    """PATCH and OPTIONS are refused everywhere."""

    @pytest.fixture
    def client(self):
        service = TasksService(config=make_test_config(seed_demo_tasks=True))
        return TestClient(service.app)

    @pytest.mark.parametrize("path", ["/", "/tareas", "/tareas/1", "/no-existe"])
    def test_patch_not_allowed(self, client, path):
        """Test PATCH is rejected even for routes that exist."""
        response = client.patch(path, json={"completada": True}, headers=auth_headers())

        assert response.status_code == 405
        assert response.json() == {"error": "Método no permitido"}

    def test_options_not_allowed(self, client):
        """Test OPTIONS is rejected."""
        response = client.options("/tareas", headers=auth_headers())

        assert response.status_code == 405
        assert response.json() == {"error": "Método no permitido"}

    def test_patch_does_not_modify_task(self, client):
        """Test a blocked PATCH never reaches the store."""
        client.patch("/tareas/1", json={"completada": True}, headers=auth_headers())

        tasks = client.get("/tareas", headers=auth_headers()).json()
        assert tasks[0]["completada"] is False


class TestRequestCorrelation:
    """Response headers added by the pipeline."""

    def test_request_id_echoed(self):
        """Test an inbound request id is returned."""
        client = TestClient(TasksService(config=make_test_config()).app)

        response = client.get("/", headers={**auth_headers(), "x-request-id": "req-123"})

        assert response.headers["X-Request-Id"] == "req-123"
        assert "X-Process-Time" in response.headers

    def test_request_id_generated_for_rejections(self):
        """Test rejected responses also carry a request id."""
        client = TestClient(TasksService(config=make_test_config()).app)

        response = client.get("/")

        assert response.status_code == 401
        assert response.headers["X-Request-Id"]
