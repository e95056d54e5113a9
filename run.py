#!/usr/bin/env python3
"""
Bank Onboarding Entry Point

Starts the FastAPI server with host and port taken from ONBOARDING_* settings.
"""

import sys

import uvicorn

from bank_onboarding.api import create_app
from bank_onboarding.config import get_config
from bank_onboarding.logging_config import setup_logging


def run_server(host: str, port: int, log_level: str = "INFO"):
    """Run the FastAPI server"""
    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level=log_level.lower()
    )


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_file=config.log_file)

    logger.info(f"Banking service at {config.api_base_url} (timeout {config.request_timeout}s)")
    logger.info(f"API available at: http://{config.api_host}:{config.api_port}")
    logger.info(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")

    try:
        run_server(config.api_host, config.api_port, config.log_level)
    except KeyboardInterrupt:
        logger.info("Shutting down onboarding service")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
