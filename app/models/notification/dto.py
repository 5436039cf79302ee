from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    HANDSHAKE = "handshake"
    EVENT_NOTIFICATION = "event-notification"
    QUERY_STATUS = "query-status"


class NotificationEvent(BaseModel):
    """
    Transient trigger for a single dispatch, never persisted.
    """

    claim_response_id: str
    organization_id: str
    event_type: EventType = EventType.EVENT_NOTIFICATION
    timestamp: datetime
    payload: Dict[str, Any] | None = None


class RetryPolicy(BaseModel):
    timeout: float = Field(gt=0)
    retries: int = Field(default=0, ge=0)
    delay: float = Field(default=0.0, ge=0)

    @property
    def attempts(self) -> int:
        return self.retries + 1


class DeliveryOutcome(BaseModel):
    success: bool
    http_status: int | None = None
    error_detail: str | None = None
    attempts: int = 0


class DeliveryResult(BaseModel):
    subscriber_id: str
    success: bool
    http_status: int | None = None
    error_detail: str | None = None
