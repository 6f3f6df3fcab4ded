"""Session store: maps signed session tokens to server-side session state.

Tokens are HS256 JWTs carrying only an opaque session id and their own
expiry. The token proves the caller holds a session we issued; the state
itself (cookies, cached extraction, delegated task) lives in the store.
"""

import math
import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import jwt
from loguru import logger

from se_migrator.models.session import SessionCredentials, SessionState

DEFAULT_TTL_SECONDS = 86_400
JWT_ALGORITHM = "HS256"


class SessionStore(ABC):
    """Keyed session cache with a fixed time-to-live measured from creation."""

    @abstractmethod
    def create(self, email: str, credentials: SessionCredentials) -> str:
        """Store a new session and return its signed token."""

    @abstractmethod
    def get(self, token: str) -> Optional[SessionState]:
        """Return the live session for `token`, or None if invalid or expired."""

    @abstractmethod
    def touch(self, token: str) -> None:
        pass

    @abstractmethod
    def delete(self, token: str) -> None:
        pass

    @abstractmethod
    def sweep_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""

    @abstractmethod
    def find_by_task_id(self, task_id: str) -> Optional[SessionState]:
        pass


class InMemorySessionStore(SessionStore):
    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, SessionState] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: SessionState, now: float) -> bool:
        return now - session.created_at > self.ttl_seconds

    def _sign(self, session_id: str, now: float) -> str:
        payload = {
            "sid": session_id,
            "iat": int(now),
            "exp": math.ceil(now + self.ttl_seconds),
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def _verify(self, token: str) -> bool:
        try:
            # Expiry is checked against our clock, not the wall clock
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected session token: {e}")
            return False
        return "sid" in claims and claims.get("exp", 0) >= self._clock()

    def create(self, email: str, credentials: SessionCredentials) -> str:
        now = self._clock()
        token = self._sign(uuid.uuid4().hex, now)
        self._sessions[token] = SessionState(
            token=token,
            email=email,
            credentials=credentials,
            created_at=now,
            last_used_at=now,
        )
        logger.info(f"Created session for {email} ({len(self._sessions)} active).")
        return token

    def get(self, token: str) -> Optional[SessionState]:
        session = self._sessions.get(token) if token else None
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            logger.info(f"Session for {session.email} expired; removing.")
            del self._sessions[token]
            return None
        if not self._verify(token):
            return None
        return session

    def touch(self, token: str) -> None:
        session = self.get(token)
        if session is not None:
            session.last_used_at = self._clock()

    def delete(self, token: str) -> None:
        self._sessions.pop(token, None)

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [t for t, s in self._sessions.items() if self._is_expired(s, now)]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info(f"Swept {len(expired)} expired sessions.")
        return len(expired)

    def find_by_task_id(self, task_id: str) -> Optional[SessionState]:
        for token, session in list(self._sessions.items()):
            if session.task and session.task.task_id == task_id:
                return self.get(token)
        return None
