from threading import Lock
from typing import Dict, List

from app.models.subscription.dto import CLAIMING_STATUSES, SubscriptionDto, SubscriptionStatus
from app.services.subscription.exceptions import StoreError, SubscriptionConflictError
from app.services.subscription.store import SubscriptionStore


class InMemorySubscriptionStore(SubscriptionStore):
    def __init__(self) -> None:
        self.__data: Dict[str, SubscriptionDto] = {}
        self.__lock = Lock()

    def create(self, subscription: SubscriptionDto) -> SubscriptionDto:
        with self.__lock:
            if subscription.id in self.__data:
                raise StoreError(f"Subscription {subscription.id} already exists")
            if self.__claimed(subscription.organization_id, subscription.endpoint):
                raise SubscriptionConflictError(subscription.organization_id, subscription.endpoint)
            self.__data[subscription.id] = subscription.model_copy()
            return subscription.model_copy()

    def get_by_id(self, subscription_id: str) -> SubscriptionDto | None:
        with self.__lock:
            sub = self.__data.get(subscription_id)
            return sub.model_copy() if sub is not None else None

    def find_active_by_organization(self, organization_id: str) -> List[SubscriptionDto]:
        with self.__lock:
            return [
                s.model_copy()
                for s in self.__data.values()
                if s.organization_id == organization_id and s.status == SubscriptionStatus.ACTIVE
            ]

    def update_status(
        self, subscription_id: str, status: SubscriptionStatus
    ) -> SubscriptionDto:
        return self.__modify(subscription_id, status=status)

    def exists_by_organization_and_endpoint(self, organization_id: str, endpoint: str) -> bool:
        with self.__lock:
            return self.__claimed(organization_id, endpoint)

    def increment_failure_count(self, subscription_id: str) -> None:
        with self.__lock:
            sub = self.__get_or_fail(subscription_id)
            self.__data[subscription_id] = sub.model_copy(
                update={"failure_count": sub.failure_count + 1}
            )

    def increment_event_count(self, subscription_id: str) -> None:
        with self.__lock:
            sub = self.__get_or_fail(subscription_id)
            self.__data[subscription_id] = sub.model_copy(
                update={"event_count": sub.event_count + 1}
            )

    def is_healthy(self) -> bool:
        return True

    def clear(self) -> None:
        with self.__lock:
            self.__data = {}

    def __modify(self, subscription_id: str, **changes: object) -> SubscriptionDto:
        with self.__lock:
            sub = self.__get_or_fail(subscription_id)
            updated = sub.model_copy(update=changes)
            self.__data[subscription_id] = updated
            return updated.model_copy()

    def __get_or_fail(self, subscription_id: str) -> SubscriptionDto:
        sub = self.__data.get(subscription_id)
        if sub is None:
            raise StoreError(f"Subscription {subscription_id} not found")
        return sub

    def __claimed(self, organization_id: str, endpoint: str) -> bool:
        return any(
            s.organization_id == organization_id
            and s.endpoint == endpoint
            and s.status in CLAIMING_STATUSES
            for s in self.__data.values()
        )
