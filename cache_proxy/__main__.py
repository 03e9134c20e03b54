import logging

import uvicorn

from .main import app, configure_logging
from .settings import settings

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging(settings.log_level)
    logger.info("Listening on port %d, forwarding to %s", settings.port, settings.upstream_base_url)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
