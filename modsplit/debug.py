"""Debug log file support."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

# Debug logger
debug_logger: Optional[logging.Logger] = None
debug_log_file: Optional[Path] = None


def setup_debug_logger(log_path: Optional[Path] = None) -> logging.Logger:
    """Setup debug logger for detailed logging."""
    global debug_logger, debug_log_file

    if log_path is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = Path(f"modsplit_debug_{timestamp}.log")

    debug_log_file = log_path

    logger = logging.getLogger("modsplit_debug")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    debug_logger = logger
    return logger


def close_debug_logger() -> None:
    """Detach and close the debug log file, if any."""
    global debug_logger, debug_log_file
    if debug_logger is not None:
        for handler in list(debug_logger.handlers):
            debug_logger.removeHandler(handler)
            handler.close()
    debug_logger = None
    debug_log_file = None


def debug_log(level: str, message: str, data: Optional[dict] = None) -> None:
    """Log debug message with optional structured data."""
    if debug_logger is None:
        return

    log_func = getattr(debug_logger, level.lower(), debug_logger.info)

    if data:
        data_str = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        log_func(f"{message}\n{data_str}")
    else:
        log_func(message)
