# tests/test_main.py
"""
Tests for the application factory.
"""
import json
import pytest
from fastapi.testclient import TestClient

from paygate.core.config import Settings
from paygate.main import create_app
from paygate.x402.errors import ConfigurationError

ROUTE = {
    "/premium": {
        "price": "0.1", "chainId": 196, "token": "0x74b7f16337b8972027f6196a17a631ac6de26d22",
        "usdcName": "USD Coin", "usdcVersion": "2", "network": "xlayer",
    }
}


def write_routes(tmp_path) -> str:
    routes_file = tmp_path / "routes.json"
    routes_file.write_text(json.dumps(ROUTE))
    return str(routes_file)


class TestCreateApp:
    """Application factory."""

    def test_health_check(self):
        """GET / answers without payment."""
        app = create_app(Settings(X402_ENABLED=False))

        response = TestClient(app).get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_project_name(self):
        """The FastAPI title comes from settings."""
        app = create_app(Settings(X402_ENABLED=False, PROJECT_NAME="Paid API"))
        assert app.title == "Paid API"

    def test_gate_installed_from_settings(self, tmp_path):
        """Configured routes are challenged."""
        settings = Settings(
            X402_ENABLED=True,
            X402_ROUTES_FILE=write_routes(tmp_path),
            X402_FACILITATOR_URL="https://facilitator.example",
            X402_PAY_TO_ADDRESS="0xseller",
        )
        app = create_app(settings)

        @app.get("/premium")
        async def premium():
            return {"content": "premium data"}

        client = TestClient(app)
        response = client.get("/premium")

        assert response.status_code == 402
        assert response.json()["accepts"][0]["payTo"] == "0xseller"
        assert client.get("/").status_code == 200

    def test_broken_config_fails_at_startup(self, tmp_path):
        """Configuration errors surface when the app is built."""
        settings = Settings(
            X402_ENABLED=True,
            X402_ROUTES_FILE=write_routes(tmp_path),
            X402_FACILITATOR_URL="https://web3.example",
            X402_FACILITATOR_TYPE="signed",
        )
        with pytest.raises(ConfigurationError):
            create_app(settings)
