from fastapi import HTTPException


class SubscriptionValidationError(HTTPException):
    """
    Raised when a subscription request or decision event is missing a required field.
    """

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=400, detail=detail)


class SubscriptionConflictError(HTTPException):
    """
    Raised when a requested or active subscription already exists for an (organization, endpoint) pair.
    """

    def __init__(self, organization_id: str, endpoint: str) -> None:
        super().__init__(
            status_code=409,
            detail=f"Subscription for organization {organization_id} and endpoint {endpoint} already exists",
        )


class StoreError(Exception):
    """
    Any failure of the subscription store. Never retried by the caller.
    """
