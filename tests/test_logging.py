import logging
import logging.handlers

from rag_relay.core.config import Settings
from rag_relay.core.logging import get_logger, resolve_level, setup_logging


def test_resolve_level():
    assert resolve_level("DEBUG") == logging.DEBUG
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level("chatty") == logging.INFO


def test_unknown_level_falls_back_to_info():
    app_logger = setup_logging(Settings(APP_NAME="relay-test-level", LOG_LEVEL="chatty"))
    assert app_logger.level == logging.INFO
    assert app_logger.propagate is False


def test_rotating_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "relay.log"
    app_logger = setup_logging(Settings(APP_NAME="relay-test-file", LOG_FILE=str(log_file)))

    assert log_file.parent.is_dir()
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in app_logger.handlers)
    for handler in app_logger.handlers:
        handler.close()


def test_setup_does_not_duplicate_handlers():
    config = Settings(APP_NAME="relay-test-dupes")
    setup_logging(config)
    app_logger = setup_logging(config)
    assert len(app_logger.handlers) == 1


def test_http_stack_is_quieted():
    setup_logging(Settings(APP_NAME="relay-test-quiet", LOG_LEVEL="DEBUG", DEBUG=False))
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_module_loggers_are_children():
    assert get_logger("rag_relay.rag.retriever").name.endswith(".rag_relay.rag.retriever")
