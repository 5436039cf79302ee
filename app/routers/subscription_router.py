import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.config import get_config
from app.container import (
    get_notification_builder,
    get_notification_event_handler,
    get_subscription_registry,
)
from app.models.fhir.types import FHIR_JSON_MEDIA_TYPE
from app.services.fhir.notification_builder import NotificationBuilder
from app.services.fhir.subscription_parser import to_fhir_subscription
from app.services.notification.event_handler import NotificationEventHandler
from app.services.subscription.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/Subscription", tags=["Subscription"])


@router.post("", response_model=None, description="Register a rest-hook subscription")
def create_subscription(
    data: Any = Body(...),
    handler: NotificationEventHandler = Depends(get_notification_event_handler),
) -> JSONResponse:
    subscription = handler.on_subscription_request(data)
    return JSONResponse(
        status_code=201,
        content=to_fhir_subscription(subscription, get_config().fhir.topic_url),
        media_type=FHIR_JSON_MEDIA_TYPE,
        headers={"Location": f"/Subscription/{subscription.id}"},
    )


@router.get("/{subscription_id}", response_model=None, description="Read a subscription")
def get_subscription(
    subscription_id: str,
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
) -> JSONResponse:
    subscription = registry.get(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail=f"Subscription {subscription_id} not found")

    return JSONResponse(
        content=to_fhir_subscription(subscription, get_config().fhir.topic_url),
        media_type=FHIR_JSON_MEDIA_TYPE,
    )


@router.get(
    "/{subscription_id}/$status",
    response_model=None,
    description="Current status of a subscription as a searchset Bundle",
)
def get_subscription_status(
    subscription_id: str,
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
    notification_builder: NotificationBuilder = Depends(get_notification_builder),
) -> JSONResponse:
    subscription = registry.get(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail=f"Subscription {subscription_id} not found")

    return JSONResponse(
        content=notification_builder.build_status(subscription),
        media_type=FHIR_JSON_MEDIA_TYPE,
    )
