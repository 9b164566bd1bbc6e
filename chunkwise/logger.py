import logging
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "app.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Cache for log mode to avoid repeated config reads
_log_mode_cache = None

# Names of loggers handed out by get_logger
_managed_loggers = set()


def _get_log_mode():
    """Get log mode from configuration."""
    global _log_mode_cache
    if _log_mode_cache is not None:
        return _log_mode_cache

    try:
        from chunkwise.config import load_config
        config = load_config()
        log_mode = config.get('log_mode', 'off')
        _log_mode_cache = log_mode
        return log_mode
    except Exception:
        # Config module still importing, or unreadable: stay quiet
        return 'off'


def _levels_for(log_mode: str):
    """Return (logger_level, console_level) for a log mode."""
    if log_mode == 'debug':
        return logging.DEBUG, logging.DEBUG
    if log_mode == 'off':
        # Higher than CRITICAL disables everything
        return logging.CRITICAL + 1, logging.CRITICAL + 1
    return logging.INFO, logging.INFO


def _make_file_handler() -> logging.FileHandler:
    LOG_DIR.mkdir(exist_ok=True)
    f_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
    f_handler.setLevel(logging.DEBUG)
    f_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return f_handler


def _apply_log_mode(logger: logging.Logger, log_mode: str) -> None:
    """Bring an already configured logger in line with the log mode."""
    logger_level, console_level = _levels_for(log_mode)
    logger.setLevel(logger_level)

    has_file_handler = any(isinstance(h, logging.FileHandler) for h in logger.handlers)

    if log_mode != 'off' and not has_file_handler:
        logger.addHandler(_make_file_handler())
    elif log_mode == 'off' and has_file_handler:
        handlers_to_remove = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        for handler in handlers_to_remove:
            handler.close()
            logger.removeHandler(handler)

    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(console_level)


def refresh_log_mode():
    """Drop the cached log mode and re-apply it to every logger made by get_logger.

    Call this after the configuration file changed.
    """
    global _log_mode_cache
    _log_mode_cache = None

    log_mode = _get_log_mode()
    for logger_name in sorted(_managed_loggers):
        logger = logging.getLogger(logger_name)
        if logger.handlers or log_mode == 'off':
            _apply_log_mode(logger, log_mode)
        else:
            _configure_new_logger(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    _managed_loggers.add(name)

    log_mode = _get_log_mode()

    # Prevent duplicate handlers if logger already configured
    if logger.handlers:
        _apply_log_mode(logger, log_mode)
        return logger

    _configure_new_logger(logger, log_mode)
    return logger


def _configure_new_logger(logger: logging.Logger, log_mode: str) -> None:
    logger_level, console_level = _levels_for(log_mode)
    logger.setLevel(logger_level)

    if log_mode != 'off':
        logger.addHandler(_make_file_handler())

        c_handler = logging.StreamHandler()
        c_handler.setLevel(console_level)
        c_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(c_handler)
