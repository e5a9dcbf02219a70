from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    """Ephemeral operator notification pushed to connected observers."""

    id: str = Field(..., description="Unique notification id (uuid4)")
    kind: NotificationKind
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
