import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Generator
from unittest.mock import MagicMock, patch

import pytest
from requests.exceptions import ConnectionError, Timeout

from app.models.notification.dto import RetryPolicy
from app.services.api.authenticators.null_authenticator import NullAuthenticator
from app.services.api.authenticators.static_header_authenticator import (
    StaticHeaderAuthenticator,
)
from app.services.api.delivery_service import NotificationDeliveryService

PATCHED_MODULE = "app.services.api.delivery_service.request"
PATCHED_SLEEP = "app.services.api.delivery_service.time.sleep"
ENDPOINT = "http://localhost:8080/notify"


@pytest.fixture()
def envelope() -> Dict[str, Any]:
    return {"resourceType": "Bundle", "type": "history", "entry": []}


def _response(status_code: int, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.iter_content.return_value = [bytes([b]) for b in text.encode()]
    return response


@patch(PATCHED_MODULE)
def test_deliver_should_succeed_on_2xx(
    mock_request: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.return_value = _response(202)

    outcome = delivery_service.deliver(ENDPOINT, None, envelope, RetryPolicy(timeout=5))

    assert outcome.success is True
    assert outcome.http_status == 202
    assert outcome.attempts == 1
    mock_request.assert_called_once()
    kwargs = mock_request.call_args.kwargs
    assert kwargs["method"] == "POST"
    assert kwargs["url"] == ENDPOINT
    assert kwargs["timeout"] == 5
    assert kwargs["allow_redirects"] is False
    assert json.loads(kwargs["data"]) == envelope


@patch(PATCHED_MODULE)
def test_deliver_should_forward_authorization_verbatim(
    mock_request: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.return_value = _response(200)

    delivery_service.deliver(ENDPOINT, "Bearer abc.DEF", envelope, RetryPolicy(timeout=1))

    headers = mock_request.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer abc.DEF"
    assert headers["Content-Type"] == "application/fhir+json"


@patch(PATCHED_MODULE)
def test_deliver_should_not_send_authorization_without_header(
    mock_request: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.return_value = _response(200)

    delivery_service.deliver(ENDPOINT, None, envelope, RetryPolicy(timeout=1))

    assert "Authorization" not in mock_request.call_args.kwargs["headers"]


@patch(PATCHED_SLEEP)
@patch(PATCHED_MODULE)
def test_deliver_should_retry_until_success(
    mock_request: MagicMock,
    mock_sleep: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.side_effect = [_response(503, "busy"), ConnectionError("refused"), _response(200)]

    outcome = delivery_service.deliver(
        ENDPOINT, None, envelope, RetryPolicy(timeout=1, retries=3, delay=0.5)
    )

    assert outcome.success is True
    assert outcome.attempts == 3
    assert mock_request.call_count == 3
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(0.5)


@patch(PATCHED_SLEEP)
@patch(PATCHED_MODULE)
def test_deliver_should_report_last_status_after_exhausting_retries(
    mock_request: MagicMock,
    mock_sleep: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.side_effect = [_response(500, "boom"), _response(404, "gone")]

    outcome = delivery_service.deliver(
        ENDPOINT, None, envelope, RetryPolicy(timeout=1, retries=1, delay=0)
    )

    assert outcome.success is False
    assert outcome.http_status == 404
    assert outcome.error_detail == "HTTP 404: gone"
    assert outcome.attempts == 2
    assert mock_sleep.call_count == 1


@patch(PATCHED_MODULE)
def test_deliver_should_report_transport_error(
    mock_request: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.side_effect = Timeout("read timed out")

    outcome = delivery_service.deliver(ENDPOINT, None, envelope, RetryPolicy(timeout=1))

    assert outcome.success is False
    assert outcome.http_status is None
    assert outcome.error_detail is not None
    assert "read timed out" in outcome.error_detail
    mock_request.assert_called_once()


@pytest.mark.parametrize("status_code", [301, 302, 400, 401, 500])
@patch(PATCHED_MODULE)
def test_deliver_should_treat_non_2xx_as_failure(
    mock_request: MagicMock,
    status_code: int,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.return_value = _response(status_code)

    outcome = delivery_service.deliver(ENDPOINT, None, envelope, RetryPolicy(timeout=1))

    assert outcome.success is False
    assert outcome.http_status == status_code


def test_make_headers_with_authenticators() -> None:
    headers = NotificationDeliveryService.make_headers(NullAuthenticator())
    assert headers == {"Content-Type": "application/fhir+json"}

    headers = NotificationDeliveryService.make_headers(StaticHeaderAuthenticator("Basic dXNlcg=="))
    assert headers["Authorization"] == "Basic dXNlcg=="


@patch(PATCHED_MODULE)
def test_deliver_should_report_unencodable_header_as_failure(
    mock_request: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.side_effect = UnicodeEncodeError("latin-1", "Bearer t€", 8, 9, "ordinal not in range(256)")

    outcome = delivery_service.deliver(ENDPOINT, "Bearer t€", envelope, RetryPolicy(timeout=1))

    assert outcome.success is False
    assert outcome.http_status is None
    assert outcome.error_detail is not None
    assert "latin-1" in outcome.error_detail


@patch(PATCHED_MODULE)
def test_deliver_should_cap_error_excerpt(
    mock_request: MagicMock,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
) -> None:
    mock_request.return_value = _response(500, "x" * 2000)

    outcome = delivery_service.deliver(ENDPOINT, None, envelope, RetryPolicy(timeout=1))

    assert outcome.error_detail == "HTTP 500: " + "x" * 500
    mock_request.return_value.close.assert_called_once()


TRICKLE_DELAY = 0.3
server_stopping = threading.Event()


class SubscriberHandler(BaseHTTPRequestHandler):
    """
    Local subscriber endpoint. The path selects the behaviour: /ok answers at once, /slow-status
    trickles its status line and /slow-body trickles the body of a 500.
    """

    def do_POST(self) -> None:
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        try:
            if self.path == "/slow-status":
                self.__trickle(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n")
            elif self.path == "/slow-body":
                self.wfile.write(b"HTTP/1.1 500 Internal Server Error\r\nContent-Length: 40\r\n\r\n")
                self.wfile.flush()
                self.__trickle(b"e" * 40)
            else:
                self.send_response(200)
                self.send_header("Content-Length", "0")
                self.end_headers()
        except (BrokenPipeError, ConnectionResetError):
            pass

    def __trickle(self, data: bytes) -> None:
        for i in range(len(data)):
            if server_stopping.is_set():
                return
            self.wfile.write(data[i : i + 1])
            self.wfile.flush()
            time.sleep(TRICKLE_DELAY)

    def log_message(self, format: str, *args: Any) -> None:
        pass


@pytest.fixture()
def subscriber_url() -> Generator[str, None, None]:
    server_stopping.clear()
    server = ThreadingHTTPServer(("127.0.0.1", 0), SubscriberHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server_stopping.set()
    server.shutdown()
    server.server_close()


def test_deliver_should_succeed_against_live_endpoint(
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
    subscriber_url: str,
) -> None:
    outcome = delivery_service.deliver(f"{subscriber_url}/ok", "Bearer abc", envelope, RetryPolicy(timeout=2))

    assert outcome.success is True
    assert outcome.http_status == 200


@pytest.mark.parametrize("path", ["/slow-status", "/slow-body"])
def test_deliver_should_bound_whole_attempt_for_trickling_endpoint(
    path: str,
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
    subscriber_url: str,
) -> None:
    started = time.monotonic()
    outcome = delivery_service.deliver(f"{subscriber_url}{path}", None, envelope, RetryPolicy(timeout=1))
    elapsed = time.monotonic() - started

    assert outcome.success is False
    assert outcome.attempts == 1
    assert elapsed < 2


def test_deliver_should_not_raise_for_non_latin1_header(
    delivery_service: NotificationDeliveryService,
    envelope: Dict[str, Any],
    subscriber_url: str,
) -> None:
    outcome = delivery_service.deliver(f"{subscriber_url}/ok", "Bearer t€", envelope, RetryPolicy(timeout=1))

    assert outcome.success is False
    assert outcome.http_status is None
    assert outcome.error_detail is not None
