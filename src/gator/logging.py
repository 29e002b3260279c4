"""Logging configuration for gator.

Database URLs can carry credentials. They are redacted from log records by
default; set LOG_SENSITIVE=true to log them in full while debugging.
"""

import logging
import os
import re

import colorlog


URL_CREDENTIALS_PATTERN = re.compile(r'(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)(?P<user>[^:/@\s]+):(?P<password>[^@/\s]+)@')


def redact_url(url: str) -> str:
    """Replace the password in a URL with ***.

    Args:
        url: Any URL, e.g. a database connection string

    Returns:
        The URL with its password masked (e.g., "postgres://gator:***@db/gator")
    """
    if not url:
        return ""
    return URL_CREDENTIALS_PATTERN.sub(lambda m: f"{m.group('scheme')}{m.group('user')}:***@", url)


class CredentialFilter(logging.Filter):
    """Logging filter that masks URL passwords unless LOG_SENSITIVE=true."""

    def __init__(self, sensitive_logging: bool = False):
        super().__init__()
        self.sensitive_logging = sensitive_logging

    def filter(self, record: logging.LogRecord) -> bool:
        if self.sensitive_logging:
            return True

        if isinstance(record.msg, str):
            record.msg = redact_url(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: redact_url(v) if isinstance(v, str) else v for k, v in record.args.items()}
            else:
                record.args = tuple(redact_url(a) if isinstance(a, str) else a for a in record.args)

        return True


def setup_logging(
    level: str = None,
    sensitive: bool = None,
    suppress_noisy: bool = True
) -> None:
    """Configure logging with colorlog and the credential filter.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default from LOG_LEVEL env or WARNING.
        sensitive: Log credentials unredacted. Default from LOG_SENSITIVE env or False.
        suppress_noisy: Suppress noisy library logs (urllib3, etc). Default True.
    """
    if level is None:
        level = os.getenv('LOG_LEVEL', 'WARNING')
    level = level.upper()
    if sensitive is None:
        sensitive = os.getenv('LOG_SENSITIVE', 'false').lower() in ('true', '1', 'yes')

    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    handler.addFilter(CredentialFilter(sensitive_logging=sensitive))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level, logging.WARNING))

    if suppress_noisy:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)
        logging.getLogger('apscheduler').setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured: level={level}, sensitive={sensitive}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
