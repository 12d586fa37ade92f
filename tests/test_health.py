# tests/test_health.py
from http import HTTPStatus


def test_health_endpoint_ok(client):
    """
    /health responds with 200 OK and the expected JSON shape.
    """
    response = client.get("/health")

    assert response.status_code == HTTPStatus.OK
    data = response.json()

    assert data["status"] == "ok"
    assert data["app_name"] == "Zoom Attendance Tracker"
    assert data["environment"] == "test"
    assert "timestamp_utc" in data
