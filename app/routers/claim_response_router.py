import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from fastapi.responses import JSONResponse

from app.config import get_config
from app.container import get_notification_event_handler
from app.models.fhir.types import FHIR_JSON_MEDIA_TYPE
from app.services.fhir.claim_response import get_organization_id, prepare_claim_response
from app.services.notification.event_handler import NotificationEventHandler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ClaimResponse", tags=["ClaimResponse"])


@router.put(
    "/{claim_response_id}",
    response_model=None,
    description="Update a ClaimResponse and notify the subscribers of its organization",
)
def update_claim_response(
    claim_response_id: str,
    background_tasks: BackgroundTasks,
    data: Any = Body(...),
    handler: NotificationEventHandler = Depends(get_notification_event_handler),
) -> JSONResponse:
    resource = prepare_claim_response(
        claim_response_id, data, strict=get_config().fhir.strict_validation
    )
    organization_id = get_organization_id(resource)

    logger.info(
        f"ClaimResponse {claim_response_id} updated for organization {organization_id}, "
        "scheduling notifications"
    )
    background_tasks.add_task(
        handler.on_decision_updated, claim_response_id, organization_id, resource
    )
    return JSONResponse(content=resource, media_type=FHIR_JSON_MEDIA_TYPE)
