import logging
from typing import List

from sqlalchemy.exc import DatabaseError, IntegrityError

from app.db.db import Database
from app.db.entities.subscription import Subscription
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.models.subscription.dto import SubscriptionDto, SubscriptionStatus
from app.services.subscription.exceptions import StoreError, SubscriptionConflictError
from app.services.subscription.store import SubscriptionStore

logger = logging.getLogger(__name__)


class DatabaseSubscriptionStore(SubscriptionStore):
    """
    Subscription store backed by the SQL database. Uniqueness of requested/active subscriptions per
    (organization, endpoint) is enforced by a partial unique index, so a racing create fails with a
    conflict instead of registering twice.
    """

    def __init__(self, database: Database) -> None:
        self.__database = database

    def create(self, subscription: SubscriptionDto) -> SubscriptionDto:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                entity = repository.create(Subscription.from_dto(subscription))
                return entity.to_dto()
        except IntegrityError:
            raise SubscriptionConflictError(subscription.organization_id, subscription.endpoint)
        except DatabaseError as e:
            raise StoreError(f"Failed to create subscription {subscription.id}: {e}") from e

    def get_by_id(self, subscription_id: str) -> SubscriptionDto | None:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                entity = repository.get(subscription_id)
                return entity.to_dto() if entity is not None else None
        except DatabaseError as e:
            raise StoreError(f"Failed to read subscription {subscription_id}: {e}") from e

    def find_active_by_organization(self, organization_id: str) -> List[SubscriptionDto]:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                entities = repository.find_by_organization(
                    organization_id, SubscriptionStatus.ACTIVE
                )
                return [e.to_dto() for e in entities]
        except DatabaseError as e:
            raise StoreError(
                f"Failed to find subscriptions for organization {organization_id}: {e}"
            ) from e

    def update_status(
        self, subscription_id: str, status: SubscriptionStatus
    ) -> SubscriptionDto:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                if repository.set_status(subscription_id, status) == 0:
                    raise StoreError(f"Subscription {subscription_id} not found")
                entity = repository.get(subscription_id)
                if entity is None:
                    raise StoreError(f"Subscription {subscription_id} not found")
                return entity.to_dto()
        except DatabaseError as e:
            raise StoreError(f"Failed to update subscription {subscription_id}: {e}") from e

    def exists_by_organization_and_endpoint(self, organization_id: str, endpoint: str) -> bool:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                return repository.exists_claiming(organization_id, endpoint)
        except DatabaseError as e:
            raise StoreError(f"Failed to check existing subscriptions: {e}") from e

    def increment_failure_count(self, subscription_id: str) -> None:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                repository.increment_failure_count(subscription_id)
        except DatabaseError as e:
            raise StoreError(f"Failed to update subscription {subscription_id}: {e}") from e

    def increment_event_count(self, subscription_id: str) -> None:
        try:
            with self.__database.get_db_session() as session:
                repository = session.get_repository(SubscriptionRepository)
                repository.increment_event_count(subscription_id)
        except DatabaseError as e:
            raise StoreError(f"Failed to update subscription {subscription_id}: {e}") from e

    def is_healthy(self) -> bool:
        return self.__database.is_healthy()
