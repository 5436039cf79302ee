from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Any, Dict, List

from app.models.notification.dto import (
    DeliveryResult,
    EventType,
    NotificationEvent,
    RetryPolicy,
)
from app.models.subscription.dto import SubscriptionDto
from app.services.api.delivery_service import NotificationDeliveryService
from app.services.fhir.notification_builder import NotificationBuilder
from app.services.subscription.exceptions import StoreError
from app.services.subscription.store import SubscriptionStore
from app.stats import Stats

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Fans a decision update out to every active subscriber of the organization. Deliveries are
    isolated from each other: a failing subscriber only yields a failed DeliveryResult.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        notification_builder: NotificationBuilder,
        delivery_service: NotificationDeliveryService,
        retry_policy: RetryPolicy,
        stats: Stats,
        max_concurrent_deliveries: int = 1,
    ) -> None:
        self.__store = store
        self.__notification_builder = notification_builder
        self.__delivery_service = delivery_service
        self.__retry_policy = retry_policy
        self.__stats = stats
        self.__max_concurrent_deliveries = max(1, max_concurrent_deliveries)

    def dispatch(
        self, claim_response_id: str, organization_id: str, resource: Dict[str, Any] | None
    ) -> List[DeliveryResult]:
        """
        Notifies all active subscribers of organization_id. Only a failure to resolve the
        subscriber set is raised (StoreError); delivery failures are returned as results.
        """
        with self.__stats.timer("notifications.dispatch"):
            subscriptions = self.__store.find_active_by_organization(organization_id)
            if not subscriptions:
                logger.warning(
                    f"No active subscriptions for organization {organization_id}, "
                    f"ClaimResponse {claim_response_id} is not announced"
                )
                return []

            event = NotificationEvent(
                claim_response_id=claim_response_id,
                organization_id=organization_id,
                event_type=EventType.EVENT_NOTIFICATION,
                timestamp=datetime.now(timezone.utc),
                payload=resource,
            )

            if self.__max_concurrent_deliveries <= 1 or len(subscriptions) == 1:
                results = [self.__notify_one(s, event) for s in subscriptions]
            else:
                results = self.__notify_concurrently(subscriptions, event)

            # Store bookkeeping happens after all deliveries, outside the worker threads
            for subscription, result in zip(subscriptions, results):
                self.__record(subscription, result)

            delivered = len([r for r in results if r.success])
            logger.info(
                f"Dispatched ClaimResponse {claim_response_id} to {len(results)} subscribers "
                f"of organization {organization_id}: {delivered} delivered, "
                f"{len(results) - delivered} failed"
            )
            return results

    def __notify_concurrently(
        self, subscriptions: List[SubscriptionDto], event: NotificationEvent
    ) -> List[DeliveryResult]:
        results: Dict[str, DeliveryResult] = {}
        workers = min(self.__max_concurrent_deliveries, len(subscriptions))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map = {
                executor.submit(self.__notify_one, subscription, event): subscription
                for subscription in subscriptions
            }
            for future in as_completed(future_map):
                results[future_map[future].id] = future.result()
        return [results[s.id] for s in subscriptions]

    def __notify_one(
        self, subscription: SubscriptionDto, event: NotificationEvent
    ) -> DeliveryResult:
        """
        Never raises: anything going wrong for this subscriber becomes a failed result, so the other
        subscribers are still notified.
        """
        try:
            envelope = self.__notification_builder.build(
                subscription,
                event.claim_response_id,
                event.payload,
                event.event_type,
                timestamp=event.timestamp,
            )
            outcome = self.__delivery_service.deliver(
                subscription.endpoint,
                subscription.auth_header,
                envelope,
                self.__retry_policy,
            )
        except Exception as e:
            logger.exception(f"Unhandled exception while notifying subscription {subscription.id}")
            return DeliveryResult(subscriber_id=subscription.id, success=False, error_detail=str(e))

        return DeliveryResult(
            subscriber_id=subscription.id,
            success=outcome.success,
            http_status=outcome.http_status,
            error_detail=outcome.error_detail,
        )

    def __record(self, subscription: SubscriptionDto, result: DeliveryResult) -> None:
        if result.success:
            self.__stats.inc("notifications.delivered")
        else:
            self.__stats.inc("notifications.failed")
            logger.warning(
                f"Notification to subscription {subscription.id} failed "
                f"(status={result.http_status}, error={result.error_detail})"
            )

        try:
            self.__store.increment_event_count(subscription.id)
            if not result.success:
                self.__store.increment_failure_count(subscription.id)
        except StoreError as e:
            logger.error(f"Failed to record delivery for subscription {subscription.id}: {e}")
