import inject

from app.config import get_config
from app.db.db import Database
from app.models.notification.dto import RetryPolicy
from app.services.api.delivery_service import NotificationDeliveryService
from app.services.fhir.notification_builder import NotificationBuilder
from app.services.notification.dispatcher import NotificationDispatcher
from app.services.notification.event_handler import NotificationEventHandler
from app.services.subscription.factory import SubscriptionStoreFactory
from app.services.subscription.registry import SubscriptionRegistry
from app.services.subscription.store import SubscriptionStore
from app.stats import get_stats


def container_config(binder: inject.Binder) -> None:
    config = get_config()

    db = Database(
        dsn=config.database.dsn,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        pool_pre_ping=config.database.pool_pre_ping,
        pool_recycle=config.database.pool_recycle,
    )
    binder.bind(Database, db)

    store = SubscriptionStoreFactory(config=config.notifications, database=db).create()
    binder.bind(SubscriptionStore, store)

    notification_builder = NotificationBuilder(
        base_url=config.fhir.base_url,
        topic_url=config.fhir.topic_url,
    )
    binder.bind(NotificationBuilder, notification_builder)

    delivery_service = NotificationDeliveryService()
    binder.bind(NotificationDeliveryService, delivery_service)

    registry = SubscriptionRegistry(
        store=store,
        notification_builder=notification_builder,
        delivery_service=delivery_service,
        handshake_timeout=config.notifications.handshake_timeout,
        stats=get_stats(),
    )
    binder.bind(SubscriptionRegistry, registry)

    dispatcher = NotificationDispatcher(
        store=store,
        notification_builder=notification_builder,
        delivery_service=delivery_service,
        retry_policy=RetryPolicy(
            timeout=config.notifications.notification_timeout,
            retries=config.notifications.notification_retries,
            delay=config.notifications.notification_retry_delay,
        ),
        stats=get_stats(),
        max_concurrent_deliveries=config.notifications.max_concurrent_deliveries,
    )
    binder.bind(NotificationDispatcher, dispatcher)

    binder.bind(NotificationEventHandler, NotificationEventHandler(registry, dispatcher))


def get_database() -> Database:
    return inject.instance(Database)


def get_subscription_store() -> SubscriptionStore:
    return inject.instance(SubscriptionStore)  # type: ignore[type-abstract]


def get_notification_builder() -> NotificationBuilder:
    return inject.instance(NotificationBuilder)


def get_subscription_registry() -> SubscriptionRegistry:
    return inject.instance(SubscriptionRegistry)


def get_notification_event_handler() -> NotificationEventHandler:
    return inject.instance(NotificationEventHandler)


def setup_container() -> None:
    inject.configure(container_config, once=True)
