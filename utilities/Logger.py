"""
Logger System for StarryCam
One named logger per component, console output plus optional log file
"""

import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Logger:
    """
    Sets up component loggers once and keeps track of them
    """

    _configured_loggers = set()
    logs_dir = Path("logs")

    @staticmethod
    def setup_logger(
        log_file: Optional[str] = None,
        log_level: int = logging.INFO,
        logger_name: Optional[str] = None,
        format_string: Optional[str] = None
    ) -> logging.Logger:
        """
        Set up a logger with console and optional file logging.

        :param log_file: Name of the log file (optional).
        :param log_level: Logging level (default: INFO).
        :param logger_name: Name of the logger (default: based on log_file).
        :param format_string: Custom format string.
        :return: Configured logger instance.
        """
        if logger_name is None:
            logger_name = Path(log_file).stem if log_file else "StarryCam"

        logger = logging.getLogger(logger_name)

        if logger_name in Logger._configured_loggers:
            return logger

        logger.handlers.clear()
        logger.setLevel(log_level)

        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file:
            log_file_path = Logger._resolve_log_path(log_file)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file_path, mode='a', encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

            logger.debug(f"Logger '{logger_name}' configured with file output: {log_file_path}")

        # Prevent propagation to root logger to avoid duplicate messages
        logger.propagate = False

        Logger._configured_loggers.add(logger_name)
        return logger

    @staticmethod
    def _resolve_log_path(log_file: str) -> Path:
        # Bare file names go under logs/, anything with a directory is used as given
        if "/" in log_file or "\\" in log_file:
            return Path(log_file)
        return Logger.logs_dir / log_file

    @staticmethod
    def set_level_all(level: int):
        """
        Set logging level for all configured loggers.

        :param level: New logging level.
        """
        for logger_name in Logger._configured_loggers:
            logger = logging.getLogger(logger_name)
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)

    @staticmethod
    def list_loggers():
        """
        List all configured loggers.

        :return: Set of logger names.
        """
        return Logger._configured_loggers.copy()
