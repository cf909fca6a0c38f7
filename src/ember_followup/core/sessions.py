# src/ember_followup/core/sessions.py

from __future__ import annotations

import logging
import threading
import uuid

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Opaque session tokens mapped to user ids.

    Lives in memory only: tokens are revoked on logout and forgotten on restart.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}
        self._lock = threading.Lock()

    def issue(self, user_id: str) -> str:
        token = str(uuid.uuid4())
        with self._lock:
            self._tokens[token] = user_id
        logger.debug("Session issued user_id=%s", user_id)
        return token

    def resolve(self, token: str | None) -> str | None:
        if not token:
            return None
        with self._lock:
            return self._tokens.get(token)

    def revoke(self, token: str | None) -> None:
        if not token:
            return
        with self._lock:
            self._tokens.pop(token, None)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
