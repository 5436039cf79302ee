from app.services.api.authenticators.authenticator import Authenticator


class StaticHeaderAuthenticator(Authenticator):
    """
    Sends the header value registered by the subscriber, verbatim.
    """

    def __init__(self, header_value: str) -> None:
        self.__header_value = header_value

    def get_authentication_header(self) -> str | None:
        return self.__header_value
