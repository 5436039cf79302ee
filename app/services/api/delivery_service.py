import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Dict, Tuple

from requests import Response, request
from requests.exceptions import RequestException

from app.models.fhir.types import FHIR_JSON_MEDIA_TYPE
from app.models.notification.dto import DeliveryOutcome, RetryPolicy
from app.services.api.authenticators.authenticator import Authenticator
from app.services.api.authenticators.factory import create_authenticator

logger = logging.getLogger(__name__)

MAX_ERROR_BODY = 500


class NotificationDeliveryService:
    """
    Delivers a notification bundle to one subscriber endpoint with a bounded, fixed-delay retry.
    Any 2xx response is a success; every other outcome is a failure and is never raised.

    Each attempt is bounded as a whole by the policy timeout. An endpoint that has not answered by
    then is abandoned: the attempt counts as failed and its worker closes the connection once it
    notices the deadline has passed.
    """

    def deliver(
        self,
        endpoint: str,
        auth_header: str | None,
        envelope: Dict[str, Any],
        policy: RetryPolicy,
    ) -> DeliveryOutcome:
        headers = self.make_headers(create_authenticator(auth_header))
        body = json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

        http_status: int | None = None
        error_detail: str | None = None
        for attempt in range(1, policy.attempts + 1):
            logger.info(
                f"Making HTTP POST request to {endpoint} (attempt {attempt}/{policy.attempts})"
            )
            try:
                http_status, error_detail = self.__bounded_attempt(endpoint, headers, body, policy.timeout)
                if error_detail is None:
                    return DeliveryOutcome(success=True, http_status=http_status, attempts=attempt)
            except FuturesTimeoutError:
                http_status = None
                error_detail = f"No response within {policy.timeout} seconds"
            except (RequestException, ValueError) as e:
                # ValueError covers header values http.client refuses to encode
                http_status = None
                error_detail = str(e)

            logger.warning(f"Failed to deliver notification to {endpoint} on attempt {attempt}: {error_detail}")
            if attempt < policy.attempts:
                logger.info(f"Retrying in {policy.delay} seconds")
                time.sleep(policy.delay)

        logger.error(f"Failed to deliver notification to {endpoint} after {policy.attempts} attempts")
        return DeliveryOutcome(
            success=False,
            http_status=http_status,
            error_detail=error_detail,
            attempts=policy.attempts,
        )

    def __bounded_attempt(
        self, endpoint: str, headers: Dict[str, str], body: bytes, timeout: float
    ) -> Tuple[int | None, str | None]:
        deadline = time.monotonic() + timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notification-attempt")
        try:
            future = executor.submit(self.__attempt, endpoint, headers, body, timeout, deadline)
            return future.result(timeout=timeout)
        finally:
            # Never wait for an abandoned attempt
            executor.shutdown(wait=False)

    @staticmethod
    def __attempt(
        endpoint: str, headers: Dict[str, str], body: bytes, timeout: float, deadline: float
    ) -> Tuple[int | None, str | None]:
        """
        Returns the status code and, for a failed attempt, an error detail.
        """
        response = request(
            method="POST",
            url=endpoint,
            headers=headers,
            data=body,
            timeout=timeout,
            allow_redirects=False,
            stream=True,
        )
        try:
            http_status = response.status_code
            if 200 <= http_status < 300:
                return http_status, None
            excerpt = NotificationDeliveryService.__read_excerpt(response, deadline)
            return http_status, f"HTTP {http_status}: {excerpt}"
        finally:
            response.close()

    @staticmethod
    def __read_excerpt(response: Response, deadline: float) -> str:
        excerpt = bytearray()
        for chunk in response.iter_content(chunk_size=1):
            excerpt += chunk
            if len(excerpt) >= MAX_ERROR_BODY or time.monotonic() > deadline:
                break
        return excerpt.decode("utf-8", errors="replace")

    @staticmethod
    def make_headers(authenticator: Authenticator) -> Dict[str, str]:
        headers = {"Content-Type": FHIR_JSON_MEDIA_TYPE}
        header_value = authenticator.get_authentication_header()
        if header_value is not None:
            headers["Authorization"] = header_value
        return headers
