# rollout_engine/run_api.py
"""Run the rollout HTTP API."""

import logging

import uvicorn

from rollout_engine.api.main import app
from rollout_engine.controller.config import get_controller_settings

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    settings = get_controller_settings()

    logger.info(f"Starting Rollout Engine API on {settings.api_host}:{settings.api_port}")

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
