"""Scraper API entry point.

Runs the FastAPI app under uvicorn on the configured port.
"""

import logging

import uvicorn

from ig_scraper.config import get_settings


def main() -> None:
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.verbose_logs else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting Instagram scraper on port %d (%s)", settings.port, settings.environment,
    )

    uvicorn.run(
        "ig_scraper.api.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
