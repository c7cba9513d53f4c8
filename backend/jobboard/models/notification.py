from enum import Enum
from datetime import datetime
from pydantic import Field

from jobboard.models.base import CamelModel, utcnow


class NotificationType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Notification(CamelModel):
    id: int
    message: str
    type: NotificationType = NotificationType.SUCCESS
    created_at: datetime = Field(default_factory=utcnow)
