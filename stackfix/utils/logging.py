"""
Logging utility for stackfix.

Provides console logging configuration with text or JSON formatting. Logs go
to stderr so printed reports (and ``scan --json``) on stdout stay clean.
"""

import json
import logging
import sys


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds grey color to log messages."""

    # ANSI color codes
    GREY = '\033[90m'
    RESET = '\033[0m'

    def format(self, record):
        message = super().format(record)
        return f"{self.GREY}{message}{self.RESET}"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(config) -> None:
    """
    Set up logging configuration.

    Args:
        config: Application settings
    """
    log_level = getattr(logging, config.log_level.upper(), logging.WARN)

    if config.log_format == "json":
        formatter = JsonFormatter()
    else:
        formatter = ColoredFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.enable_debug_logs:
        logging.getLogger("stackfix").setLevel(logging.DEBUG)
    else:
        logging.getLogger("stackfix").setLevel(log_level)

    # Reduce noise from boto3
    logging.getLogger("boto3").setLevel(logging.WARN)
    logging.getLogger("botocore").setLevel(logging.WARN)
    logging.getLogger("urllib3").setLevel(logging.WARN)
