# se_migrator/models/results.py
from typing import Any, Dict, Optional

from .base import CamelModel
from .team import ExtractedData


class AuthResult(CamelModel):
    success: bool
    token: Optional[str] = None
    task_id: Optional[str] = None
    task_url: Optional[str] = None
    message: str = "Authentication successful"
    session_data: Dict[str, Any] = {}


class CredentialCheck(CamelModel):
    valid: bool
    message: str


class ConnectionStatus(CamelModel):
    success: bool
    message: str


class TaskCompletion(CamelModel):
    completed: bool
    message: str
    data: Optional[ExtractedData] = None
