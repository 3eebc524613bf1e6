from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum

from .form import FormSchema


class MessageRole(str, Enum):
    VISITOR = "visitor"
    AGENT = "agent"


class ConversationState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    FORM_PENDING = "form_pending"
    ENDED = "ended"


class LifecycleState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"


class SendStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    REJECTED = "rejected"
    DISCARDED = "discarded"
    PREVIEW = "preview"


class Message(BaseModel):
    role: MessageRole
    content: str
    attached_form: Optional[FormSchema] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Notification(BaseModel):
    """Transient toast-style notice shown next to the transcript"""
    level: str
    text: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SendOutcome(BaseModel):
    status: SendStatus
    reply: Optional[Message] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status not in (SendStatus.REJECTED, SendStatus.DISCARDED)
