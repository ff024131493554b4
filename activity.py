"""Capped, newest-first audit log of user actions."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from auth import SESSION_KEY
from store import Store

logger = logging.getLogger(__name__)

LOGS_KEY = "user_logs"
DEFAULT_LIMIT = 500


class ActivityLog:
    def __init__(self, store: Store, limit: int = DEFAULT_LIMIT):
        self.store = store
        self.limit = limit

    def entries(self) -> list:
        logs = self.store.get(LOGS_KEY, [])
        if not isinstance(logs, list):
            logger.error("Activity log has unexpected shape; treating as empty")
            return []
        return logs

    def append(self, action: str, details: Optional[dict] = None) -> Optional[dict]:
        """Record ``action`` for the signed-in user.

        Anonymous actions are not recorded. The log keeps only the newest
        ``limit`` entries.
        """
        user = self.store.get(SESSION_KEY)
        if not isinstance(user, dict) or not user.get("id"):
            return None
        entry = {
            "id": uuid.uuid4().hex,
            "userId": user["id"],
            "userName": user.get("name", ""),
            "action": action,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            entry["details"] = details
        logs = [entry] + self.entries()
        self.store.set(LOGS_KEY, logs[: self.limit])
        return entry

    def clear(self) -> None:
        self.store.set(LOGS_KEY, [])
