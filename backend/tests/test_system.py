"""
Tests for system endpoints, error envelopes and the global rate limiter.
"""

from fastapi.testclient import TestClient

from main import RateLimiter, create_app


class TestSystemEndpoints:

    def test_health_without_openai(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected", "openai": "disconnected"}

    def test_api_index(self, client):
        endpoints = client.get("/api").json()["data"]["endpoints"]

        assert endpoints["payments"] == "/api/payments"
        assert endpoints["chat"] == "/api/chat"

    def test_unknown_route(self, client):
        response = client.get("/api/nope")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Route not found", "path": "/api/nope"}

    def test_request_id_header(self, client):
        assert client.get("/api").headers["X-Request-ID"]

    def test_metrics_count_ledger_operations(self, client, auth_headers):
        client.get("/api/payments/wallet", headers=auth_headers)
        client.post("/api/payments/deposit", json={"amount": 5}, headers=auth_headers)

        summary = client.get("/metrics").json()

        assert "ledger.deposit" in summary["timings"]
        assert summary["openai"]["request_count"] == 0


class TestRateLimiter:

    def test_window(self):
        limiter = RateLimiter(max_requests=2, window_seconds=60)

        assert limiter.is_allowed("a")
        assert limiter.is_allowed("a")
        assert not limiter.is_allowed("a")
        assert limiter.is_allowed("b")
        assert limiter.get_remaining("a") == 0
        assert 0 < limiter.get_reset_time("a") <= 60

    def test_global_limit_returns_envelope(self, settings):
        app = create_app(settings.model_copy(update={"rate_limit_max_requests": 2}))

        with TestClient(app) as client:
            client.get("/api")
            client.get("/api")
            response = client.get("/api")
            health = client.get("/health")

        assert response.status_code == 429
        assert response.json()["success"] is False
        assert health.status_code == 200
