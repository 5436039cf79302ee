from app.services.api.authenticators.authenticator import Authenticator


class NullAuthenticator(Authenticator):
    """
    Used for subscribers that registered without an Authorization header.
    """

    def get_authentication_header(self) -> str | None:
        return None
