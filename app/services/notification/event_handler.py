import logging
from typing import Any, Dict

from app.models.subscription.dto import SubscriptionDto
from app.services.notification.dispatcher import NotificationDispatcher
from app.services.subscription.exceptions import StoreError
from app.services.subscription.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class NotificationEventHandler:
    """
    Entry points used by the HTTP layer: decision updates and subscription requests.
    """

    def __init__(
        self, registry: SubscriptionRegistry, dispatcher: NotificationDispatcher
    ) -> None:
        self.__registry = registry
        self.__dispatcher = dispatcher

    def on_decision_updated(
        self, claim_response_id: str, organization_id: str, resource: Dict[str, Any]
    ) -> None:
        """
        Called after a ClaimResponse has been stored. Notification problems never reach the caller,
        the update itself has already succeeded.
        """
        try:
            results = self.__dispatcher.dispatch(claim_response_id, organization_id, resource)
        except StoreError as e:
            logger.error(
                f"Could not resolve subscribers for ClaimResponse {claim_response_id}, "
                f"no notifications sent: {e}"
            )
            return

        failed = [r.subscriber_id for r in results if not r.success]
        if failed:
            logger.warning(
                f"ClaimResponse {claim_response_id}: notification failed for subscriptions {failed}"
            )

    def on_subscription_request(self, data: Any) -> SubscriptionDto:
        return self.__registry.register(data)
