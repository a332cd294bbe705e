"""Tests for the HTTP API."""

from unittest.mock import MagicMock

import psycopg
import pytest
from fastapi.testclient import TestClient

import query_analyzer
from main import app, get_connection


@pytest.fixture
def client() -> TestClient:
    """Client without lifespan, so no database is contacted."""
    return TestClient(app)


@pytest.fixture
def connected_client(client):
    """Client whose database dependency yields a mock connection."""

    def fake_connection():
        yield MagicMock()

    app.dependency_overrides[get_connection] = fake_connection
    yield client
    app.dependency_overrides.clear()


class TestInfoEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "analyze_plan" in response.json()["endpoints"]

    def test_health_without_database(self, client, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "not configured"


class TestAnalyzePlan:

    def test_valid_plan(self, client, seq_scan_document):
        response = client.post("/analyze/plan", json={
            "plan": seq_scan_document,
            "query": "SELECT * FROM orders",
            "executions_per_month": 100
        })

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "SELECT * FROM orders"
        assert body["resource_metrics"]["performance_grade"] == "C+"
        assert body["cost_projection"]["executions_per_month"] == 100
        assert body["bottlenecks"][0]["bottleneck_type"] == "HIGH_CPU"

    def test_invalid_plan(self, client):
        response = client.post("/analyze/plan", json={"plan": {}})
        assert response.status_code == 400
        assert "root node" in response.json()["detail"]

    def test_negative_executions(self, client, seq_scan_document):
        response = client.post("/analyze/plan", json={
            "plan": seq_scan_document,
            "executions_per_month": -1
        })
        assert response.status_code == 422


class TestAnalyzeQuery:

    def test_database_not_configured(self, client, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        response = client.post("/analyze", params={"query": "SELECT 1"})
        assert response.status_code == 503

    def test_analyzes_fetched_plan(
        self, connected_client, monkeypatch, hash_join_document
    ):
        monkeypatch.setattr(
            query_analyzer,
            "fetch_execution_plan",
            MagicMock(return_value=hash_join_document)
        )
        response = connected_client.post(
            "/analyze", params={"query": "SELECT * FROM orders"}
        )

        assert response.status_code == 200
        assert len(response.json()["time_series"]["time_points"]) == 4

    def test_unsafe_query(self, connected_client):
        response = connected_client.post(
            "/analyze", params={"query": "DELETE FROM orders"}
        )
        assert response.status_code == 400

    def test_timeout(self, connected_client, monkeypatch):
        monkeypatch.setattr(
            query_analyzer,
            "fetch_execution_plan",
            MagicMock(side_effect=psycopg.Error(
                "canceling statement due to statement timeout"
            ))
        )
        response = connected_client.post("/analyze", params={"query": "SELECT 1"})
        assert response.status_code == 408

    def test_database_error(self, connected_client, monkeypatch):
        monkeypatch.setattr(
            query_analyzer,
            "fetch_execution_plan",
            MagicMock(side_effect=psycopg.Error("relation does not exist"))
        )
        response = connected_client.post("/analyze", params={"query": "SELECT 1"})
        assert response.status_code == 500
