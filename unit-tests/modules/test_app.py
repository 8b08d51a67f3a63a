"""
Tests for app/app.py module
"""

from unittest.mock import patch
from fastapi.testclient import TestClient
import sys
import os

# Add app and root directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'app'))

from app import app

client = TestClient(app)


class TestApp:
    """Tests for the main FastAPI application"""

    def test_health_check(self):
        """Test the /health endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_routers_included(self):
        """Test that all routers are included in the app"""
        app_routes = set(app.openapi()["paths"])
        app_routes.update(getattr(route, "path", None) for route in app.routes)

        assert "/recurrence/generate" in app_routes
        assert "/recurrence/expand" in app_routes
        assert "/events/" in app_routes
        assert "/events/{series_id}/edit" in app_routes
        assert "/events/{series_id}/delete-occurrence" in app_routes

    def test_routes_respond(self):
        """Test the mounted prefixes by request rather than by route objects"""
        assert client.get("/recurrence/parse", params={"text": "FREQ=DAILY"}).status_code == 200
        assert client.post("/events/5/edit", json={}).status_code == 422

    @patch('database.close_connection')
    @patch('db_setup.setup_database')
    def test_lifespan_sets_up_and_closes_database(self, mock_setup, mock_close):
        """Test that startup prepares the schema and shutdown closes the connection"""
        with TestClient(app) as lifespan_client:
            mock_setup.assert_called_once()
            assert lifespan_client.get("/health").status_code == 200
        mock_close.assert_called_once()
