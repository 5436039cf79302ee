from typing import Any, Dict, TypeVar, Type
from fhir.resources.R4B.claimresponse import ClaimResponse
from fhir.resources.R4B.domainresource import DomainResource
from pydantic import ValidationError

T = TypeVar("T", bound=DomainResource)


def create_model(model: Type[T], data: Dict[str, Any], strict: bool) -> T:
    try:
        if strict:
            resource = model.model_validate(data)
            return resource  # type: ignore

        resource = model.model_construct(**data)
        return resource  # type: ignore
    except ValidationError as e:
        raise e


def create_claim_response(data: Dict[str, Any], strict: bool) -> ClaimResponse:
    return create_model(ClaimResponse, data, strict)
