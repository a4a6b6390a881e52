import time
import uuid
import logging
from typing import Callable, Optional

from .storage import ANONYMOUS_ID_KEY, SESSION_ID_KEY, USER_ID_KEY, KeyValueStore

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


class IdentityState:
    """
    Anonymous, session and user identifiers for the running process.

    The anonymous id is created once per install and never changes. A new
    session id is issued on every ``load()`` and again whenever the app
    returns to the foreground after more than ``session_timeout`` seconds
    of inactivity. The user id exists only between ``sign_in`` and
    ``sign_out``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        session_timeout: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._session_timeout = session_timeout
        self._clock = clock
        self.anonymous_id: Optional[str] = None
        self.session_id: Optional[str] = None
        self.user_id: Optional[str] = None
        self._last_activity = clock()

    def load(self) -> "IdentityState":
        self.anonymous_id = self._read(ANONYMOUS_ID_KEY)
        if not self.anonymous_id:
            self.anonymous_id = new_id()
            self._write(ANONYMOUS_ID_KEY, self.anonymous_id)
            logger.info("Created anonymous id for new install")

        self.user_id = self._read(USER_ID_KEY) or None
        self.rotate_session()
        return self

    def rotate_session(self):
        self.session_id = new_id()
        self._last_activity = self._clock()
        self._write(SESSION_ID_KEY, self.session_id)

    def touch(self):
        self._last_activity = self._clock()

    def on_foreground(self) -> bool:
        """Rotate the session if the app was idle too long. Returns True on rotation."""
        idle = self._clock() - self._last_activity
        if idle > self._session_timeout:
            logger.info(f"Rotating session after {idle:.0f}s of inactivity")
            self.rotate_session()
            return True
        self.touch()
        return False

    def on_background(self):
        self.touch()

    def sign_in(self, user_id: str):
        self.user_id = user_id
        self._write(USER_ID_KEY, user_id)

    def sign_out(self):
        self.user_id = None
        try:
            self._store.delete(USER_ID_KEY)
        except Exception as e:
            logger.error(f"Failed to clear persisted user id: {e}")

    def _read(self, key: str) -> Optional[str]:
        try:
            return self._store.load(key)
        except Exception as e:
            logger.error(f"Failed to load {key}: {e}")
            return None

    def _write(self, key: str, value: str):
        try:
            self._store.save(key, value)
        except Exception as e:
            logger.error(f"Failed to persist {key}: {e}")
