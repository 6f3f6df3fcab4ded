# se_migrator/models/session.py
import time
from typing import List, Optional

from pydantic import Field, SecretStr

from .base import CamelModel
from .team import ExtractedData


class BrowserCookie(CamelModel):
    name: str
    value: str
    domain: str
    path: str = "/"
    expires: Optional[float] = None
    http_only: bool = False
    secure: bool = False


class SessionCredentials(CamelModel):
    """What we need to act on the user's behalf on the external site."""

    cookies: List[BrowserCookie] = []
    # Delegated tasks log in themselves, so they need the password. Never serialized.
    password: Optional[SecretStr] = Field(None, exclude=True, repr=False)


class DelegatedTask(CamelModel):
    task_id: str
    task_url: Optional[str] = None
    created_at: float = Field(default_factory=time.time)


class SessionState(CamelModel):
    """Server-side record behind a session token. Timestamps are epoch seconds."""

    token: str
    email: str
    credentials: SessionCredentials = Field(default_factory=SessionCredentials)
    created_at: float
    last_used_at: float
    cached_extraction: Optional[ExtractedData] = None
    task: Optional[DelegatedTask] = None
