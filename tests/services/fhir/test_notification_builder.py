from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from app.models.notification.dto import EventType
from app.models.subscription.dto import PayloadType, SubscriptionDto
from app.services.fhir.notification_builder import NotificationBuilder
from tests.mock_data import BASE_URL, TOPIC_URL

TIMESTAMP = datetime(2024, 5, 2, 11, 1, tzinfo=timezone.utc)


def _parameters(envelope: Dict[str, Any]) -> Dict[str, Any]:
    status = envelope["entry"][0]["resource"]
    return {p["name"]: p for p in status["parameter"]}


def _parts(parameter: Dict[str, Any]) -> Dict[str, Any]:
    return {p["name"]: p for p in parameter["part"]}


def test_build_event_notification_with_full_resource(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
    mock_claim_response: Dict[str, Any],
) -> None:
    envelope = notification_builder.build(
        active_subscription,
        "CR-1",
        mock_claim_response,
        EventType.EVENT_NOTIFICATION,
        timestamp=TIMESTAMP,
    )

    assert envelope["resourceType"] == "Bundle"
    assert envelope["type"] == "history"
    assert envelope["timestamp"] == TIMESTAMP.isoformat()
    assert len(envelope["entry"]) == 2

    status_entry, resource_entry = envelope["entry"]
    assert status_entry["resource"]["resourceType"] == "Parameters"
    assert status_entry["request"] == {
        "method": "GET",
        "url": f"{BASE_URL}/Subscription/sub-1/$status",
    }
    assert resource_entry["resource"]["id"] == "CR-1"
    assert resource_entry["fullUrl"] == f"{BASE_URL}/ClaimResponse/CR-1"
    assert resource_entry["request"] == {"method": "PUT", "url": "ClaimResponse/CR-1"}


def test_build_event_notification_status_section(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
    mock_claim_response: Dict[str, Any],
) -> None:
    active_subscription.event_count = 6

    envelope = notification_builder.build(
        active_subscription,
        "CR-1",
        mock_claim_response,
        EventType.EVENT_NOTIFICATION,
        timestamp=TIMESTAMP,
    )

    parameters = _parameters(envelope)
    assert parameters["subscription"]["valueReference"]["reference"] == f"{BASE_URL}/Subscription/sub-1"
    assert parameters["topic"]["valueCanonical"] == TOPIC_URL
    assert parameters["status"]["valueCode"] == "active"
    assert parameters["type"]["valueCode"] == "event-notification"
    assert parameters["events-since-subscription-start"]["valueString"] == "7"

    event = _parts(parameters["notification-event"])
    assert event["event-number"]["valueString"] == "7"
    assert event["timestamp"]["valueInstant"] == TIMESTAMP.isoformat()
    assert event["focus"]["valueReference"]["reference"] == f"{BASE_URL}/ClaimResponse/CR-1"


def test_build_event_notification_with_explicit_event_number(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
    mock_claim_response: Dict[str, Any],
) -> None:
    envelope = notification_builder.build(
        active_subscription, "CR-1", mock_claim_response, EventType.EVENT_NOTIFICATION, event_number=42
    )

    event = _parts(_parameters(envelope)["notification-event"])
    assert event["event-number"]["valueString"] == "42"


@pytest.mark.parametrize("payload_type", [PayloadType.ID_ONLY, PayloadType.EMPTY])
def test_build_event_notification_without_resource_entry(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
    mock_claim_response: Dict[str, Any],
    payload_type: PayloadType,
) -> None:
    active_subscription.payload_type = payload_type

    envelope = notification_builder.build(
        active_subscription, "CR-1", mock_claim_response, EventType.EVENT_NOTIFICATION
    )

    entries: List[Dict[str, Any]] = envelope["entry"]
    assert len(entries) == 1
    assert entries[0]["resource"]["resourceType"] == "Parameters"
    # The focus reference is still present, only the resource body is left out
    assert "notification-event" in _parameters(envelope)


def test_build_handshake(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
) -> None:
    envelope = notification_builder.build_handshake(active_subscription)

    assert len(envelope["entry"]) == 1
    parameters = _parameters(envelope)
    assert parameters["type"]["valueCode"] == "handshake"
    assert parameters["events-since-subscription-start"]["valueString"] == "0"
    assert "notification-event" not in parameters


def test_build_defaults_resource_type_and_id(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
) -> None:
    envelope = notification_builder.build(
        active_subscription, "CR-9", {"status": "active"}, EventType.EVENT_NOTIFICATION
    )

    resource = envelope["entry"][1]["resource"]
    assert resource["resourceType"] == "ClaimResponse"
    assert resource["id"] == "CR-9"


def test_build_status(
    notification_builder: NotificationBuilder,
    active_subscription: SubscriptionDto,
) -> None:
    active_subscription.event_count = 3

    bundle = notification_builder.build_status(active_subscription)

    assert bundle["type"] == "searchset"
    assert bundle["total"] == 1
    assert bundle["entry"][0]["search"] == {"mode": "match"}
    parameters = _parameters(bundle)
    assert parameters["type"]["valueCode"] == "query-status"
    assert parameters["events-since-subscription-start"]["valueString"] == "3"
