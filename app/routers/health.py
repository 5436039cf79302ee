import logging
from typing import Any

from fastapi import APIRouter, Depends

from app.container import get_subscription_store
from app.services.subscription.store import SubscriptionStore

logger = logging.getLogger(__name__)
router = APIRouter()


def ok_or_error(value: bool) -> str:
    return "ok" if value else "error"


@router.get("/health")
def health(store: SubscriptionStore = Depends(get_subscription_store)) -> dict[str, Any]:
    logger.info("Checking subscription store health")

    components = {"subscription_store": ok_or_error(store.is_healthy())}
    healthy = ok_or_error(all(value == "ok" for value in components.values()))
    return {"status": healthy, "components": components}
