import os
import sys
import logging

AGENT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None):
    # stdout may carry piped event data; logs always go to stderr
    root = logging.getLogger()
    root.setLevel(level or os.environ.get("TELEMETRY_LOG_LEVEL", "INFO").upper())
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(AGENT_LOG_FORMAT))
        root.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
