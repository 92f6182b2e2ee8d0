"""
Entry point: python -m llm_relay
"""

import uvicorn

from .config import get_settings
from .server import create_app, setup_logging


def main() -> None:
    settings = get_settings()
    logger = setup_logging(settings)
    logger.info("Starting chat relay on http://%s:%d", settings.host, settings.port)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
