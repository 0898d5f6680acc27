"""서버 실행

실행 방법:
    python -m autopr
"""

import logging
import sys

import uvicorn

from autopr.core.config import ConfigError, load_settings
from autopr.main import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("autopr")


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.critical("Failed to load config: %s", e)
        sys.exit(1)

    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    app = create_app(settings)

    logger.info("Starting server on %s:%d", settings.host, settings.port)
    logger.info("  POST /webhook/sentry - Sentry webhook endpoint")
    logger.info("  GET  /health - Health check")
    logger.info("Fix generation uses %r; make sure it is installed and on PATH", settings.claude_path)

    # 리스너 종료 유예시간 (처리 중 job 대기와는 별개)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_grace_period,
        log_level=settings.log_level.lower(),
    )
    logger.info("Server stopped")


if __name__ == "__main__":
    main()
