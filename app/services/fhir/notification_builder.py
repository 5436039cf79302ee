from datetime import datetime, timezone
from typing import Any, Dict, List
from uuid import uuid4

from yarl import URL

from app.models.fhir.types import (
    NOTIFICATION_BUNDLE_PROFILE,
    SUBSCRIPTION_STATUS_PROFILE,
)
from app.models.notification.dto import EventType
from app.models.subscription.dto import PayloadType, SubscriptionDto

DEFAULT_RESOURCE_TYPE = "ClaimResponse"


class NotificationBuilder:
    """
    Builds subscription notification bundles following the R4 subscriptions backport: a history
    Bundle whose first entry is the subscription status Parameters, followed by the changed resource
    when the subscription asked for full-resource payloads.
    """

    def __init__(self, base_url: str, topic_url: str) -> None:
        self.__base_url = URL(base_url)
        self.__topic_url = topic_url

    def build(
        self,
        subscription: SubscriptionDto,
        claim_response_id: str,
        resource: Dict[str, Any] | None,
        event_type: EventType,
        event_number: int | None = None,
        timestamp: datetime | None = None,
    ) -> Dict[str, Any]:
        timestamp = timestamp or datetime.now(timezone.utc)
        resource_type = (resource or {}).get("resourceType", DEFAULT_RESOURCE_TYPE)

        if event_type == EventType.EVENT_NOTIFICATION:
            event_number = event_number if event_number is not None else subscription.event_count + 1
            notification_event = self.__notification_event(
                event_number,
                timestamp,
                self.__reference(resource_type, claim_response_id),
            )
            status = self.__status_parameters(
                subscription, event_type, event_number, [notification_event]
            )
        else:
            status = self.__status_parameters(subscription, event_type, 0, [])

        entries = [self.__status_entry(subscription, status)]
        if (
            event_type == EventType.EVENT_NOTIFICATION
            and subscription.payload_type == PayloadType.FULL_RESOURCE
            and resource is not None
        ):
            entries.append(self.__resource_entry(resource_type, claim_response_id, resource))

        return {
            "resourceType": "Bundle",
            "id": str(uuid4()),
            "meta": {"profile": [NOTIFICATION_BUNDLE_PROFILE]},
            "type": "history",
            "timestamp": timestamp.isoformat(),
            "entry": entries,
        }

    def build_handshake(self, subscription: SubscriptionDto) -> Dict[str, Any]:
        return self.build(subscription, "", None, EventType.HANDSHAKE)

    def build_status(self, subscription: SubscriptionDto) -> Dict[str, Any]:
        """
        Result of the $status operation: a searchset Bundle holding the current status Parameters.
        """
        status = self.__status_parameters(
            subscription, EventType.QUERY_STATUS, subscription.event_count, []
        )
        entry = self.__status_entry(subscription, status)
        entry["search"] = {"mode": "match"}
        return {
            "resourceType": "Bundle",
            "id": str(uuid4()),
            "type": "searchset",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total": 1,
            "entry": [entry],
        }

    def __status_parameters(
        self,
        subscription: SubscriptionDto,
        event_type: EventType,
        events_since_start: int,
        notification_events: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        parameters: List[Dict[str, Any]] = [
            {
                "name": "subscription",
                "valueReference": {"reference": self.__reference("Subscription", subscription.id)},
            },
            {"name": "topic", "valueCanonical": self.__topic_url},
            {"name": "status", "valueCode": subscription.status.value},
            {"name": "type", "valueCode": event_type.value},
            {"name": "events-since-subscription-start", "valueString": str(events_since_start)},
        ]
        parameters.extend(notification_events)
        return {
            "resourceType": "Parameters",
            "id": str(uuid4()),
            "meta": {"profile": [SUBSCRIPTION_STATUS_PROFILE]},
            "parameter": parameters,
        }

    def __status_entry(
        self, subscription: SubscriptionDto, status: Dict[str, Any]
    ) -> Dict[str, Any]:
        return {
            "fullUrl": f"urn:uuid:{status['id']}",
            "resource": status,
            "request": {
                "method": "GET",
                "url": f"{self.__reference('Subscription', subscription.id)}/$status",
            },
            "response": {"status": "200"},
        }

    def __resource_entry(
        self, resource_type: str, resource_id: str, resource: Dict[str, Any]
    ) -> Dict[str, Any]:
        body = dict(resource)
        body.setdefault("resourceType", resource_type)
        body.setdefault("id", resource_id)
        return {
            "fullUrl": self.__reference(resource_type, resource_id),
            "resource": body,
            "request": {"method": "PUT", "url": f"{resource_type}/{resource_id}"},
            "response": {"status": "200"},
        }

    @staticmethod
    def __notification_event(
        event_number: int, timestamp: datetime, focus: str
    ) -> Dict[str, Any]:
        return {
            "name": "notification-event",
            "part": [
                {"name": "event-number", "valueString": str(event_number)},
                {"name": "timestamp", "valueInstant": timestamp.isoformat()},
                {"name": "focus", "valueReference": {"reference": focus}},
            ],
        }

    def __reference(self, resource_type: str, resource_id: str) -> str:
        return str(self.__base_url / resource_type / resource_id)
