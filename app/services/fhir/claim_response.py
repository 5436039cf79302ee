import logging
from typing import Any, Dict

from pydantic import ValidationError

from app.services.fhir.model_factory import create_claim_response
from app.services.subscription.exceptions import SubscriptionValidationError

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "ClaimResponse"


def prepare_claim_response(
    claim_response_id: str, data: Any, strict: bool
) -> Dict[str, Any]:
    """
    Checks an updated ClaimResponse before it is announced to subscribers. The id defaults to the
    id from the request path and must match it when present.
    """
    if not isinstance(data, dict):
        raise SubscriptionValidationError("ClaimResponse must be a JSON object")
    if data.get("resourceType") != RESOURCE_TYPE:
        raise SubscriptionValidationError(f"expected resourceType {RESOURCE_TYPE}")

    resource = dict(data)
    resource_id = resource.setdefault("id", claim_response_id)
    if resource_id != claim_response_id:
        raise SubscriptionValidationError(
            f"resource id {resource_id} does not match {claim_response_id}"
        )

    if strict:
        try:
            create_claim_response(resource, strict=True)
        except ValidationError as e:
            logger.warning(f"ClaimResponse {claim_response_id} failed validation: {e}")
            raise SubscriptionValidationError(f"invalid ClaimResponse: {e.error_count()} errors")

    return resource


def get_organization_id(resource: Dict[str, Any]) -> str:
    """
    The organization a decision belongs to is the requesting provider's identifier. A missing
    identifier is rejected instead of being replaced by a placeholder organization.
    """
    requestor = resource.get("requestor")
    identifier = requestor.get("identifier") if isinstance(requestor, dict) else None
    value = identifier.get("value") if isinstance(identifier, dict) else None
    if not isinstance(value, str) or value.strip() == "":
        raise SubscriptionValidationError("organization identifier not found")
    return value.strip()
