import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from app.models.notification.dto import DeliveryOutcome, RetryPolicy
from app.models.subscription.dto import SubscriptionDto, SubscriptionStatus
from app.services.api.delivery_service import NotificationDeliveryService
from app.services.fhir.notification_builder import NotificationBuilder
from app.services.fhir.subscription_parser import parse_subscription_request
from app.services.subscription.exceptions import SubscriptionConflictError
from app.services.subscription.store import SubscriptionStore
from app.stats import Stats

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Validates subscription requests, assigns them an identity and drives them through the
    requested -> active | error lifecycle by performing the handshake.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        notification_builder: NotificationBuilder,
        delivery_service: NotificationDeliveryService,
        handshake_timeout: float,
        stats: Stats,
    ) -> None:
        self.__store = store
        self.__notification_builder = notification_builder
        self.__delivery_service = delivery_service
        # Handshakes are a single attempt so registration latency stays bounded
        self.__handshake_policy = RetryPolicy(timeout=handshake_timeout, retries=0)
        self.__stats = stats

    def register(self, data: Any) -> SubscriptionDto:
        """
        Registers a subscription and performs the handshake. A failed handshake is not a
        registration failure: the returned subscription is in the error state instead.
        """
        request = parse_subscription_request(data)

        if self.__store.exists_by_organization_and_endpoint(
            request.organization_id, request.endpoint
        ):
            logger.info(
                f"Rejecting duplicate subscription for organization {request.organization_id} "
                f"and endpoint {request.endpoint}"
            )
            raise SubscriptionConflictError(request.organization_id, request.endpoint)

        subscription = self.__store.create(
            SubscriptionDto(
                id=str(uuid4()),
                organization_id=request.organization_id,
                endpoint=request.endpoint,
                auth_header=request.auth_header,
                payload_type=request.payload_type,
                status=SubscriptionStatus.REQUESTED,
                created_at=datetime.now(timezone.utc),
                end_date_time=request.end_date_time,
                reason=request.reason,
            )
        )
        logger.info(
            f"Created subscription {subscription.id} for organization {subscription.organization_id}"
        )

        return self.__handshake(subscription)

    def get(self, subscription_id: str) -> SubscriptionDto | None:
        return self.__store.get_by_id(subscription_id)

    def __handshake(self, subscription: SubscriptionDto) -> SubscriptionDto:
        try:
            envelope = self.__notification_builder.build_handshake(subscription)
            outcome = self.__delivery_service.deliver(
                subscription.endpoint,
                subscription.auth_header,
                envelope,
                self.__handshake_policy,
            )
        except Exception as e:
            # A subscription must never be left in requested
            logger.exception(f"Unhandled exception during handshake for subscription {subscription.id}")
            outcome = DeliveryOutcome(success=False, error_detail=str(e))

        if outcome.success:
            self.__stats.inc("subscriptions.handshake.success")
            logger.info(f"Handshake for subscription {subscription.id} succeeded, activating")
            return self.__store.update_status(subscription.id, SubscriptionStatus.ACTIVE)

        self.__stats.inc("subscriptions.handshake.failed")
        logger.warning(
            f"Handshake for subscription {subscription.id} failed "
            f"(status={outcome.http_status}, error={outcome.error_detail})"
        )
        self.__store.increment_failure_count(subscription.id)
        return self.__store.update_status(subscription.id, SubscriptionStatus.ERROR)
