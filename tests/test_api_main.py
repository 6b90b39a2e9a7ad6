"""Tests for the FastAPI app startup/shutdown and route wiring."""

from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient


def _settings(legal_data_dir) -> MagicMock:
    return MagicMock(
        OPENAI_API_KEY="",
        OPENAI_CHAT_MODEL="gpt-4.1-mini",
        OPENAI_BASE_URL="",
        CURRENCY_API_URL="",
        LEGAL_DATA_DIR=str(legal_data_dir),
        REFERENCE_CURRENCY="USD",
        MIN_PROFIT_THRESHOLD=1000.0,
        ENHANCEMENT_CACHE_TTL_SECONDS=60.0,
    )


class TestAppRouteWiring:
    @patch("eor_quote.api.main.get_settings")
    def test_health_route_registered(self, mock_settings, legal_data_dir):
        mock_settings.return_value = _settings(legal_data_dir)

        from eor_quote.api.main import app

        with TestClient(app) as client:
            resp = client.get("/health")
            assert resp.status_code == 200
            assert resp.json()["model"] == "disabled"

    @patch("eor_quote.api.main.get_settings")
    def test_lifespan_builds_deterministic_pipeline(self, mock_settings, legal_data_dir):
        mock_settings.return_value = _settings(legal_data_dir)

        from eor_quote.api.main import app

        with TestClient(app) as client:
            assert app.state.openai is None
            assert app.state.pipeline.sessions.ttl_seconds == 60.0
            resp = client.post(
                "/enhancement/quote",
                json={
                    "params": {"country_code": "BR", "base_salary_monthly": 10000},
                    "quote": {
                        "provider": "oyster", "base_cost": 10000, "monthly_total": 11000,
                        "currency": "BRL", "country": "BR",
                    },
                },
            )
            assert resp.status_code == 200
            assert resp.json()["enhancement"]["totals"]["total_monthly_enhancement"] == 7207.75

    @patch("eor_quote.api.main.get_settings")
    def test_unknown_route(self, mock_settings, legal_data_dir):
        mock_settings.return_value = _settings(legal_data_dir)

        from eor_quote.api.main import app

        with TestClient(app) as client:
            assert client.post("/process", json={}).status_code == 404
