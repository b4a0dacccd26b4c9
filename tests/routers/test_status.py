"""Tests for the status endpoint."""

import pytest
from fastapi.testclient import TestClient

from main import app


@pytest.fixture
def client():
  return TestClient(app)


class TestStatusEndpoint:
  """Test service status endpoint."""

  def test_status_endpoint_healthy(self, client):
    response = client.get("/v1/status")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert data["details"]["service"] == "quickshop-billing"
    assert "version" in data["details"]

  def test_security_headers(self, client):
    response = client.get("/v1/status")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"

  def test_unknown_route(self, client):
    assert client.get("/v1/nope").status_code == 404
