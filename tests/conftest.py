import copy
from datetime import datetime, timezone
from typing import Any, Dict
from collections.abc import Generator

from fastapi import FastAPI
from fastapi.testclient import TestClient
import inject
import pytest

from app.application import create_fastapi_app
from app.config import reset_config, set_config
from app.container import get_database
from app.db.db import Database
from app.models.notification.dto import RetryPolicy
from app.models.subscription.dto import PayloadType, SubscriptionDto, SubscriptionStatus
from app.services.api.delivery_service import NotificationDeliveryService
from app.services.fhir.notification_builder import NotificationBuilder
from app.services.subscription.in_memory_store import InMemorySubscriptionStore
from app.stats import MemoryClient, Statsd
from tests.mock_data import (
    BASE_URL,
    ORGANIZATION_ID,
    SUBSCRIBER_ENDPOINT,
    TOPIC_URL,
    claim_response,
    subscription_request,
)
from tests.test_config import get_test_config



@pytest.fixture
def database() -> Generator[Database, Any, None]:
    try:
        db = Database("sqlite:///:memory:")
        db.generate_tables()
        yield db
    except Exception as e:
        raise e


@pytest.fixture
def fastapi_app() -> Generator[FastAPI, None, None]:
    set_config(get_test_config())
    app = create_fastapi_app()
    db = get_database()
    db.generate_tables()
    yield app
    inject.clear()
    reset_config()


@pytest.fixture
def api_client(fastapi_app: FastAPI) -> TestClient:
    return TestClient(fastapi_app)


@pytest.fixture()
def in_memory_store() -> InMemorySubscriptionStore:
    return InMemorySubscriptionStore()


@pytest.fixture()
def notification_builder() -> NotificationBuilder:
    return NotificationBuilder(base_url=BASE_URL, topic_url=TOPIC_URL)


@pytest.fixture()
def delivery_service() -> NotificationDeliveryService:
    return NotificationDeliveryService()


@pytest.fixture()
def retry_policy() -> RetryPolicy:
    return RetryPolicy(timeout=1, retries=2, delay=0)


@pytest.fixture()
def memory_stats() -> Statsd:
    return Statsd(MemoryClient())


@pytest.fixture()
def mock_subscription_request() -> Dict[str, Any]:
    return copy.deepcopy(subscription_request)


@pytest.fixture()
def mock_claim_response() -> Dict[str, Any]:
    return copy.deepcopy(claim_response)


@pytest.fixture()
def active_subscription() -> SubscriptionDto:
    return SubscriptionDto(
        id="sub-1",
        organization_id=ORGANIZATION_ID,
        endpoint=SUBSCRIBER_ENDPOINT,
        auth_header="Bearer secret-token",
        payload_type=PayloadType.FULL_RESOURCE,
        status=SubscriptionStatus.ACTIVE,
        created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )
