"""Logging setup for the CLI"""

import logging
import os

import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEBUG_LOG_FILE = 'dashstream_debug.log'


def setup_logging(debug: bool = False) -> None:
    """
    Configure the root logger

    Normal runs log to the console at LOG_LEVEL. Debug runs log everything to
    the console and append it to a debug log file as well.

    Args:
        debug: Whether debug mode is enabled
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if not debug:
        level = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO)
        root_logger.setLevel(level)
        console_handler.setLevel(level)
        return

    root_logger.setLevel(logging.DEBUG)
    console_handler.setLevel(logging.DEBUG)

    log_file = os.path.abspath(DEBUG_LOG_FILE)
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')  # 'a' to append
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # httpx logs every request at INFO; keep it out of debug output
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Debug logging enabled - appending to {log_file}")
