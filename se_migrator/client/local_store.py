import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from loguru import logger

SESSION_TTL_SECONDS = 86_400


class LocalSessionStore:
    """Persists the proxy client's session (token, task id/url) to a JSON file.

    A saved session older than the TTL is treated as absent and removed.
    """

    def __init__(
        self,
        path: Path,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        record = {key: value for key, value in data.items() if value is not None}
        record["savedAt"] = self._clock()
        self.path.write_text(json.dumps(record, indent=2), encoding="utf-8")
        logger.debug(f"Saved client session to {self.path}")

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            record = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            self.clear()
            return None
        if self._clock() - record.get("savedAt", 0) > self.ttl_seconds:
            logger.info("Saved client session has expired.")
            self.clear()
            return None
        return record

    def update(self, **changes: Any) -> None:
        record = self.load()
        if record is None:
            return
        # Expiry still counts from the original save; None removes a key
        record.update(changes)
        record = {key: value for key, value in record.items() if value is not None}
        self.path.write_text(json.dumps(record, indent=2), encoding="utf-8")

    @property
    def token(self) -> Optional[str]:
        record = self.load()
        return record.get("token") if record else None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
