"""
Health endpoint tests.
"""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from app import __version__


def _connected():
    conn_cm = MagicMock()
    conn_cm.__enter__ = MagicMock(return_value=MagicMock())
    conn_cm.__exit__ = MagicMock(return_value=False)
    return conn_cm


def test_health_ok(client: TestClient) -> None:
    from app.db import engine

    with patch.object(engine, "connect", return_value=_connected()):
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__, "database": "connected"}


def test_health_503_when_db_down(client: TestClient) -> None:
    """Unreachable database reports unhealthy instead of raising."""
    from app.db import engine

    with patch.object(engine, "connect", side_effect=Exception("Connection refused")):
        response = client.get("/health")
    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "unhealthy"
    assert body["database"] == "disconnected"
