import logging

from app.config import ConfigNotifications
from app.db.db import Database
from app.services.subscription.database_store import DatabaseSubscriptionStore
from app.services.subscription.in_memory_store import InMemorySubscriptionStore
from app.services.subscription.store import SubscriptionStore

logger = logging.getLogger(__name__)


class SubscriptionStoreFactory:
    def __init__(self, config: ConfigNotifications, database: Database) -> None:
        self.__config = config
        self.__database = database

    def create(self) -> SubscriptionStore:
        if self.__config.store == "memory":
            logger.warning("Using in-memory subscription store, subscriptions are lost on restart")
            return InMemorySubscriptionStore()

        return DatabaseSubscriptionStore(self.__database)
