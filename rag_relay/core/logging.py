import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from .config import Settings, settings

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers of the HTTP stack that would otherwise log every streamed request
QUIET_LOGGERS = ("urllib3", "requests")


def resolve_level(name: str) -> int:
    """Map a level name to its number; unknown names fall back to INFO."""
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(config: Optional[Settings] = None) -> logging.Logger:
    """
    Configure the application logger.

    Console output is always on; a rotating file is added when LOG_FILE is set.
    Module loggers from `get_logger` are children of this one.

    Args:
        config: Settings to read (defaults to the shared settings)

    Returns:
        logging.Logger: The application logger
    """
    config = config or settings
    level = resolve_level(config.LOG_LEVEL)

    app_logger = logging.getLogger(config.APP_NAME)
    app_logger.setLevel(level)
    app_logger.handlers.clear()

    formatter = logging.Formatter(fmt=config.LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if config.LOG_FILE:
        try:
            Path(config.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=config.LOG_FILE,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            app_logger.addHandler(file_handler)
        except OSError as e:
            app_logger.warning(f"Failed to setup file logging: {e}")

    app_logger.propagate = False

    if level != logging.getLevelName(str(config.LOG_LEVEL).upper()):
        app_logger.warning(f"Unknown LOG_LEVEL {config.LOG_LEVEL!r}, using INFO")

    if not config.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return app_logger


logger = setup_logging()


def get_logger(module_name: Optional[str] = None) -> logging.Logger:
    """Child of the application logger for a module (typically __name__)."""
    if module_name:
        return logging.getLogger(f"{settings.APP_NAME}.{module_name}")
    return logger


def log_startup_info():
    """Log what this relay talks to"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Generation: {settings.LLM_TYPE} / {settings.MODEL_ID}")
    logger.info(f"Search index: {settings.INDEX_NAME} @ {settings.ELASTICSEARCH_URL}")
    semantic = settings.SEMANTIC_FIELD or "disabled"
    logger.info(f"Fields: content={settings.CONTENT_FIELD}, semantic={semantic}")
    logger.info(f"Allowed origins: {', '.join(settings.allowed_origins)}")
    logger.info("=" * 60)


def log_shutdown_info():
    """Log application shutdown information"""
    logger.info(f"Shutting down {settings.APP_NAME}")
