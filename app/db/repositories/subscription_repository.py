import logging
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import DatabaseError

from app.db.decorator import repository
from app.db.entities.subscription import Subscription
from app.db.repositories.repository_base import RepositoryBase
from app.models.subscription.dto import CLAIMING_STATUSES, SubscriptionStatus

logger = logging.getLogger(__name__)

_CLAIMING_VALUES = [s.value for s in CLAIMING_STATUSES]


@repository(Subscription)
class SubscriptionRepository(RepositoryBase):
    def get(self, subscription_id: str) -> Subscription | None:
        stmt = select(Subscription).where(Subscription.id == subscription_id)
        return self.db_session.session.execute(stmt).scalars().first()

    def find_by_organization(
        self, organization_id: str, status: SubscriptionStatus
    ) -> Sequence[Subscription]:
        stmt = (
            select(Subscription)
            .where(
                Subscription.organization_id == organization_id,
                Subscription.status == status.value,
            )
            .order_by(Subscription.created_at)
        )
        return self.db_session.session.execute(stmt).scalars().all()

    def exists_claiming(self, organization_id: str, endpoint: str) -> bool:
        stmt = select(Subscription.id).where(
            Subscription.organization_id == organization_id,
            Subscription.endpoint == endpoint,
            Subscription.status.in_(_CLAIMING_VALUES),
        )
        return self.db_session.session.execute(stmt).first() is not None

    def create(self, subscription: Subscription) -> Subscription:
        try:
            self.db_session.add(subscription)
            self.db_session.commit()
            return subscription
        except DatabaseError as e:
            self.db_session.rollback()
            logger.error(f"Failed to add subscription {subscription.id}: {e}")
            raise

    def set_status(self, subscription_id: str, status: SubscriptionStatus) -> int:
        stmt = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(status=status.value)
        )
        return self._execute_update(stmt, subscription_id)

    def increment_failure_count(self, subscription_id: str) -> int:
        stmt = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(failure_count=Subscription.failure_count + 1)
        )
        return self._execute_update(stmt, subscription_id)

    def increment_event_count(self, subscription_id: str) -> int:
        stmt = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(event_count=Subscription.event_count + 1)
        )
        return self._execute_update(stmt, subscription_id)

    def _execute_update(self, stmt, subscription_id: str) -> int:  # type: ignore[no-untyped-def]
        try:
            result = self.db_session.session.execute(stmt)
            self.db_session.commit()
            return result.rowcount  # type: ignore[attr-defined, no-any-return]
        except DatabaseError as e:
            self.db_session.rollback()
            logger.error(f"Failed to update subscription {subscription_id}: {e}")
            raise
