"""
Logging setup for the referral rewards service.

Configures the root logger once per process. Gunicorn captures stdout, so a
single stream handler is enough in every environment.
"""
import logging
import os
import sys

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ('httpx', 'httpcore', 'urllib3', 'apscheduler', 'sqlalchemy.engine')

_configured = False


def setup_logging(level: str = None) -> None:
    """
    Configure application logging.

    Args:
        level: Log level name; defaults to LOG_LEVEL env var or INFO
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
