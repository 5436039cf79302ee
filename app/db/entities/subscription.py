from datetime import datetime, timezone

from sqlalchemy import TIMESTAMP, Index, Integer, PrimaryKeyConstraint, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.entities.base import Base
from app.models.subscription.dto import PayloadType, SubscriptionDto, SubscriptionStatus

_CLAIMING = text("status IN ('requested', 'active')")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """
    Timestamps are stored in UTC. SQLite drops the offset, so a naive value read back is UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        PrimaryKeyConstraint("id"),
        # At most one requested/active subscription per organization and endpoint
        Index(
            "ix_subscriptions_claimed_pair",
            "organization_id",
            "endpoint",
            unique=True,
            sqlite_where=_CLAIMING,
            postgresql_where=_CLAIMING,
        ),
        Index("ix_subscriptions_organization_status", "organization_id", "status"),
    )

    id: Mapped[str] = mapped_column("id", String(36), nullable=False)
    organization_id: Mapped[str] = mapped_column("organization_id", String, nullable=False)
    endpoint: Mapped[str] = mapped_column("endpoint", String, nullable=False)
    auth_header: Mapped[str | None] = mapped_column(
        "auth_header", String, nullable=True, default=None
    )
    payload_type: Mapped[str] = mapped_column(
        "payload_type", String(16), nullable=False, default=PayloadType.FULL_RESOURCE.value
    )
    status: Mapped[str] = mapped_column(
        "status", String(16), nullable=False, default=SubscriptionStatus.REQUESTED.value
    )
    reason: Mapped[str | None] = mapped_column("reason", String, nullable=True, default=None)
    failure_count: Mapped[int] = mapped_column(
        "failure_count", Integer, nullable=False, default=0
    )
    event_count: Mapped[int] = mapped_column("event_count", Integer, nullable=False, default=0)
    end_date_time: Mapped[datetime | None] = mapped_column(
        "end_date_time", TIMESTAMP(timezone=True), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        "created_at", TIMESTAMP(timezone=True), nullable=False, default=_utc_now
    )
    modified_at: Mapped[datetime] = mapped_column(
        "modified_at",
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utc_now,
        onupdate=_utc_now,
    )

    @classmethod
    def from_dto(cls, dto: SubscriptionDto) -> "Subscription":
        return cls(
            id=dto.id,
            organization_id=dto.organization_id,
            endpoint=dto.endpoint,
            auth_header=dto.auth_header,
            payload_type=dto.payload_type.value,
            status=dto.status.value,
            reason=dto.reason,
            failure_count=dto.failure_count,
            event_count=dto.event_count,
            end_date_time=_as_utc(dto.end_date_time) if dto.end_date_time else None,
            created_at=_as_utc(dto.created_at),
        )

    def to_dto(self) -> SubscriptionDto:
        return SubscriptionDto(
            id=self.id,
            organization_id=self.organization_id,
            endpoint=self.endpoint,
            auth_header=self.auth_header,
            payload_type=PayloadType(self.payload_type),
            status=SubscriptionStatus(self.status),
            reason=self.reason,
            failure_count=self.failure_count,
            event_count=self.event_count,
            end_date_time=_as_utc(self.end_date_time) if self.end_date_time else None,
            created_at=_as_utc(self.created_at),
        )
