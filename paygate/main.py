# paygate/main.py
from typing import Optional
import logging

from fastapi import FastAPI

from paygate.core.config import Settings, settings as default_settings
from paygate.x402.middleware import X402Middleware, gate_from_settings

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application with the payment gate installed.

    Route and facilitator configuration is read once here, so a broken
    configuration fails at startup rather than on the first paid request.
    """
    settings = settings or default_settings
    app = FastAPI(title=settings.PROJECT_NAME)

    if settings.X402_ENABLED:
        gate = gate_from_settings(settings)
        app.add_middleware(X402Middleware, gate=gate, enabled=True)
        logger.info(f"x402: Payment gate protecting {len(gate.routes)} route(s): {sorted(gate.routes)}")
    else:
        logger.info("x402: Payment gate disabled (X402_ENABLED=false)")

    @app.get("/", summary="Health Check", tags=["default"])
    def read_root():
        """ Basic health check endpoint. """
        logger.info("Root endpoint '/' accessed.")
        return {"status": "ok", "message": f"Welcome to {settings.PROJECT_NAME}"}

    return app


app = create_app()
