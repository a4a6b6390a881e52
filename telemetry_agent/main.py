import asyncio
import json
import logging
import sys

from . import client as sdk
from .config import AgentConfig
from .logging_ import configure_logging

logger = logging.getLogger(__name__)


async def pump_stdin(stream=None):
    """Track one event per JSON line: ``{"event": "...", "properties": {...}}``."""
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    tracked = 0

    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except ValueError as e:
            logger.warning(f"Skipping malformed line: {e}")
            continue
        if not isinstance(msg, dict) or not msg.get("event"):
            logger.warning("Skipping line without an 'event' name")
            continue

        if msg.get("user_id"):
            sdk.identify(msg["user_id"])
        if msg.get("screen"):
            sdk.screen(msg["screen"], msg.get("properties"), msg.get("navigation"))
        else:
            sdk.track(msg["event"], msg.get("properties"), msg.get("context"))
        tracked += 1

    return tracked


async def main():
    configure_logging()
    sdk.init(AgentConfig.from_env())
    try:
        tracked = await pump_stdin()
        logger.info(f"Tracked {tracked} events from stdin")
    finally:
        await sdk.shutdown(flush=True, timeout=30.0)


def run():
    try:
        asyncio.run(main())
    except KeyError as e:
        logger.error(f"Missing required environment variable: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
