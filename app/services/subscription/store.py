from abc import ABC, abstractmethod
from typing import List

from app.models.subscription.dto import SubscriptionDto, SubscriptionStatus


class SubscriptionStore(ABC):
    """
    Persistence boundary for subscription records. Every operation may raise StoreError.
    """

    @abstractmethod
    def create(self, subscription: SubscriptionDto) -> SubscriptionDto:
        """
        Persists a new subscription. Raises SubscriptionConflictError when a requested or active
        subscription already exists for the same organization and endpoint.
        """

    @abstractmethod
    def get_by_id(self, subscription_id: str) -> SubscriptionDto | None:
        """
        Returns the subscription or None when it does not exist.
        """

    @abstractmethod
    def find_active_by_organization(self, organization_id: str) -> List[SubscriptionDto]:
        """
        Returns all active subscriptions whose organization id matches exactly.
        """

    @abstractmethod
    def update_status(
        self, subscription_id: str, status: SubscriptionStatus
    ) -> SubscriptionDto:
        """
        Atomically sets the status of a subscription and returns the updated record.
        """

    @abstractmethod
    def exists_by_organization_and_endpoint(self, organization_id: str, endpoint: str) -> bool:
        """
        True when a requested or active subscription exists for the pair.
        """

    @abstractmethod
    def increment_failure_count(self, subscription_id: str) -> None: ...

    @abstractmethod
    def increment_event_count(self, subscription_id: str) -> None: ...

    @abstractmethod
    def is_healthy(self) -> bool: ...
