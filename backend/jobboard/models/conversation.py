from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import Field

from jobboard.models.base import CamelModel, utcnow


class MessageType(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


class Message(CamelModel):
    id: str
    text: str
    sender: str
    timestamp: datetime = Field(default_factory=utcnow)
    type: MessageType = MessageType.SENT
    read: bool = True


class Conversation(CamelModel):
    id: str
    participant: str
    subject: str = "New Conversation"
    job_id: Optional[str] = None
    # Title of the job at the time the conversation was started
    job_title: Optional[str] = None
    avatar: str = ""
    messages: list[Message] = Field(default_factory=list)
    last_activity: datetime = Field(default_factory=utcnow)
    last_message: str = ""
    unread_count: int = Field(default=0, ge=0)


class ConversationCreate(CamelModel):
    recipient: str = ""
    subject: str = ""
    job_id: Optional[str] = None
    message: str = ""


class MessageCreate(CamelModel):
    text: str = ""
