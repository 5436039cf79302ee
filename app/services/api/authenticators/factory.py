from app.services.api.authenticators.authenticator import Authenticator
from app.services.api.authenticators.null_authenticator import NullAuthenticator
from app.services.api.authenticators.static_header_authenticator import (
    StaticHeaderAuthenticator,
)


def create_authenticator(auth_header: str | None) -> Authenticator:
    if auth_header is None or auth_header == "":
        return NullAuthenticator()
    return StaticHeaderAuthenticator(auth_header)
