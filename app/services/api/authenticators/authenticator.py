from abc import ABC, abstractmethod


class Authenticator(ABC):
    """
    Supplies the value of the ``Authorization`` header for an outbound notification.

    Subscribers hand us the header they want to receive when they register, so
    implementations only decide whether a header is sent and with which value.
    """

    @abstractmethod
    def get_authentication_header(self) -> str | None:
        """
        Returns the header value, or None when no ``Authorization`` header should be sent.
        """
        ...
