from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class SubscriptionStatus(str, Enum):
    REQUESTED = "requested"
    ACTIVE = "active"
    ERROR = "error"
    OFF = "off"


class PayloadType(str, Enum):
    FULL_RESOURCE = "full-resource"
    ID_ONLY = "id-only"
    EMPTY = "empty"


# Statuses that claim the (organization, endpoint) pair
CLAIMING_STATUSES = (SubscriptionStatus.REQUESTED, SubscriptionStatus.ACTIVE)


class SubscriptionRequest(BaseModel):
    """
    Parsed and normalized registration request, before it has an identity.
    """

    organization_id: str
    endpoint: str
    auth_header: str | None = None
    payload_type: PayloadType = PayloadType.FULL_RESOURCE
    end_date_time: datetime | None = None
    reason: str | None = None


class SubscriptionDto(BaseModel):
    id: str
    organization_id: str
    endpoint: str
    auth_header: str | None = None
    payload_type: PayloadType = PayloadType.FULL_RESOURCE
    status: SubscriptionStatus = SubscriptionStatus.REQUESTED
    created_at: datetime
    end_date_time: datetime | None = None
    reason: str | None = None
    failure_count: int = 0
    event_count: int = 0
