import logging
import re
from datetime import datetime
from typing import Any, Dict, List

from yarl import URL

from app.models.fhir.types import (
    FHIR_JSON_MEDIA_TYPE,
    FILTER_CRITERIA_EXTENSION,
    ORGANIZATION_FILTER_KEY,
    PAYLOAD_CONTENT_EXTENSION,
    REST_HOOK_CHANNEL,
    SUBSCRIPTION_PROFILE,
)
from app.models.subscription.dto import PayloadType, SubscriptionDto, SubscriptionRequest
from app.services.subscription.exceptions import SubscriptionValidationError

logger = logging.getLogger(__name__)

_FILTER_PATTERN = re.compile(rf"^{re.escape(ORGANIZATION_FILTER_KEY)}=(\S+)$")
_AUTHORIZATION = "authorization"


def parse_subscription_request(data: Any) -> SubscriptionRequest:
    """
    Parses a FHIR R4B (subscriptions-backport) Subscription into a typed registration request.
    Raises SubscriptionValidationError on missing or malformed required fields.
    """
    if not isinstance(data, dict):
        raise SubscriptionValidationError("subscription must be a JSON object")

    resource_type = data.get("resourceType")
    if resource_type is not None and resource_type != "Subscription":
        raise SubscriptionValidationError(
            f"expected resourceType Subscription, got {resource_type}"
        )

    channel = _as_dict(data.get("channel"))
    endpoint = parse_endpoint(channel)
    organization_id = parse_organization_id(data)

    channel_type = channel.get("type")
    if channel_type is not None and channel_type != REST_HOOK_CHANNEL:
        raise SubscriptionValidationError(f"unsupported channel type {channel_type}")

    reason = data.get("reason")
    return SubscriptionRequest(
        organization_id=organization_id,
        endpoint=endpoint,
        auth_header=parse_auth_header(channel.get("header")),
        payload_type=parse_payload_type(channel),
        end_date_time=parse_end(data.get("end")),
        reason=reason if isinstance(reason, str) else None,
    )


def parse_endpoint(channel: Dict[str, Any]) -> str:
    endpoint = channel.get("endpoint")
    if not isinstance(endpoint, str) or endpoint.strip() == "":
        raise SubscriptionValidationError("endpoint required")

    endpoint = endpoint.strip()
    try:
        url = URL(endpoint)
    except ValueError:
        raise SubscriptionValidationError("endpoint must be an absolute http(s) url")
    if not url.is_absolute() or not url.host or url.scheme not in ("http", "https"):
        raise SubscriptionValidationError("endpoint must be an absolute http(s) url")
    return endpoint


def parse_organization_id(data: Dict[str, Any]) -> str:
    """
    Reads the organization identifier from the backport filter criteria, which must have the
    literal form org-identifier=<value>.
    """
    criteria_element = _as_dict(data.get("_criteria"))
    candidates = _extension_values(
        criteria_element.get("extension"), FILTER_CRITERIA_EXTENSION, "valueString"
    ) + _extension_values(data.get("extension"), FILTER_CRITERIA_EXTENSION, "valueString")

    for value in candidates:
        match = _FILTER_PATTERN.match(value.strip())
        if match:
            return match.group(1)

    raise SubscriptionValidationError("organization filter not found")


def parse_payload_type(channel: Dict[str, Any]) -> PayloadType:
    payload_element = _as_dict(channel.get("_payload"))
    codes = _extension_values(
        payload_element.get("extension"), PAYLOAD_CONTENT_EXTENSION, "valueCode"
    )
    if not codes:
        return PayloadType.FULL_RESOURCE

    try:
        return PayloadType(codes[0])
    except ValueError:
        logger.warning(
            f"Unrecognised payload content {codes[0]}, "
            f"falling back to {PayloadType.FULL_RESOURCE.value}"
        )
        return PayloadType.FULL_RESOURCE


def parse_auth_header(headers: Any) -> str | None:
    """
    Returns the Authorization value from channel.header, kept verbatim. An entry without a header
    name is taken as the raw Authorization value. The value must be sendable as an HTTP header:
    latin-1 only and without line breaks.
    """
    if not isinstance(headers, list):
        return None

    for header in headers:
        if not isinstance(header, str) or header.strip() == "":
            continue
        name, sep, value = header.partition(":")
        if not sep:
            return _valid_header_value(header.strip())
        if name.strip().lower() == _AUTHORIZATION:
            return _valid_header_value(value.strip())
    return None


def _valid_header_value(value: str) -> str:
    if "\r" in value or "\n" in value:
        raise SubscriptionValidationError("authorization header must not contain line breaks")
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        raise SubscriptionValidationError("authorization header must be latin-1 encodable")
    return value


def parse_end(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise SubscriptionValidationError("end must be a FHIR instant")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise SubscriptionValidationError(f"end is not a valid instant: {value}")


def to_fhir_subscription(subscription: SubscriptionDto, topic_url: str) -> Dict[str, Any]:
    """
    Renders a stored subscription as a FHIR R4B backport Subscription. The Authorization header is
    never echoed back.
    """
    resource: Dict[str, Any] = {
        "resourceType": "Subscription",
        "id": subscription.id,
        "meta": {"profile": [SUBSCRIPTION_PROFILE]},
        "status": subscription.status.value,
        "reason": subscription.reason or "Prior authorization decision updates",
        "criteria": topic_url,
        "_criteria": {
            "extension": [
                {
                    "url": FILTER_CRITERIA_EXTENSION,
                    "valueString": f"{ORGANIZATION_FILTER_KEY}={subscription.organization_id}",
                }
            ]
        },
        "channel": {
            "type": REST_HOOK_CHANNEL,
            "endpoint": subscription.endpoint,
            "payload": FHIR_JSON_MEDIA_TYPE,
            "_payload": {
                "extension": [
                    {
                        "url": PAYLOAD_CONTENT_EXTENSION,
                        "valueCode": subscription.payload_type.value,
                    }
                ]
            },
        },
    }
    if subscription.end_date_time is not None:
        resource["end"] = subscription.end_date_time.isoformat()
    return resource


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _extension_values(extensions: Any, url: str, value_key: str) -> List[str]:
    if not isinstance(extensions, list):
        return []
    return [
        ext[value_key]
        for ext in extensions
        if isinstance(ext, dict) and ext.get("url") == url and isinstance(ext.get(value_key), str)
    ]
