"""
Test suite for the development collector.

Run with: pytest tests/test_web.py -v
"""
from __future__ import annotations

import pytest

from src.reel_flow.web.app import app, visits


@pytest.fixture
def client():
    app.config["TESTING"] = True
    visits.clear()
    with app.test_client() as client:
        yield client
    visits.clear()


class TestCollector:
    """Test the analytics collector endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"

    def test_receive_and_list_events(self, client):
        """Test that a valid batch is stored and returned per visit."""
        events = [
            {"eventType": "view", "slideId": "slide-a"},
            {"eventType": "interaction", "slideId": "slide-a", "metadata": {"type": "option_select"}},
            {"eventType": "time_spent", "slideId": "slide-a", "duration": 4},
        ]

        response = client.post("/analytics/visit/visit-1/events", json={"events": events})

        assert response.status_code == 200
        assert response.get_json() == {"received": 3}

        listed = client.get("/analytics/visit/visit-1/events").get_json()
        assert listed["visit_id"] == "visit-1"
        assert [e["eventType"] for e in listed["events"]] == ["view", "interaction", "time_spent"]
        assert all("receivedAt" in e for e in listed["events"])

    def test_batches_accumulate(self, client):
        client.post("/analytics/visit/v/events", json={"events": [{"eventType": "view"}]})
        client.post("/analytics/visit/v/events", json={"events": [{"eventType": "view"}]})

        assert len(client.get("/analytics/visit/v/events").get_json()["events"]) == 2

    def test_unknown_visit(self, client):
        assert client.get("/analytics/visit/ghost/events").status_code == 404

    @pytest.mark.parametrize("body", [
        {"events": "nope"},
        {"items": []},
        {"events": [{"eventType": "click"}]},
        {"events": [{"eventType": "view", "slideId": 5}]},
        {"events": [{"eventType": "time_spent", "duration": -2}]},
        {"events": [{"eventType": "view", "metadata": "x"}]},
        {"events": ["view"]},
    ])
    def test_invalid_batches_rejected(self, client, body):
        """Test that malformed batches are rejected as a whole."""
        response = client.post("/analytics/visit/v/events", json=body)

        assert response.status_code == 400
        assert "v" not in visits

    def test_non_json_body(self, client):
        response = client.post("/analytics/visit/v/events", data="events", content_type="text/plain")

        assert response.status_code == 400

    def test_queue_delivers_to_collector(self, client):
        """Test that the queue's wire format is accepted by the collector."""
        from src.reel_flow.models.analytics import AnalyticsEvent

        wire = [
            AnalyticsEvent(visit_id="v", event_type="view", slide_id="s1").to_wire(),
            AnalyticsEvent(visit_id="v", event_type="time_spent", slide_id="s1", duration=3).to_wire(),
        ]

        response = client.post("/analytics/visit/v/events", json={"events": wire})

        assert response.get_json() == {"received": 2}
