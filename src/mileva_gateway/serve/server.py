"""Run the gateway under uvicorn."""
from __future__ import annotations
import logging
import sys

import uvicorn
import yaml

from mileva_gateway.common.logging_setup import setup_logging
from mileva_gateway.common.settings import Settings
from mileva_gateway.serve.fastapi_app import create_app

LOGGER = logging.getLogger("mileva.gateway.server")


def main() -> None:
    try:
        settings = Settings.from_env()
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        setup_logging()
        LOGGER.error("Invalid configuration: %s", e)
        sys.exit(1)

    setup_logging(settings.log_level)
    app = create_app(settings)
    LOGGER.info("Mileva API server starting on port %s", settings.port)
    LOGGER.info("Ollama endpoint: %s", settings.ollama_base_url)
    try:
        uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
    except Exception:
        LOGGER.exception("Server stopped on a fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
