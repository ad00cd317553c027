"""Request construction and pluggable transports.

Every protocol request is built as a complete, self-contained
``httpx.Request``: the session cookie, CSRF token, form body and timeout
are resolved when the request is built. A Transport only has to deliver it.

Two transports ship with the library:
- HttpxTransport sends requests over the network with an httpx.Client
- RecordingTransport stores requests for later replay and answers
  mutations with an optimistic acknowledgement, for offline use
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Protocol, runtime_checkable
from urllib.parse import parse_qs

import httpx

from .config import ClientSettings
from .exceptions import TransportError
from .session import Session

logger = logging.getLogger(__name__)

# Endpoint paths
ITERATIONS_PATH = "/iterations.php"
LOGIN_PATH = "/login.php"
LOGIN_CHECK_PATH = "/login_check.php"
LOGOUT_PATH = "/logout.php"
BLOB_PATH = "/getaccts.php"
MUTATE_PATH = "/show_website.php"

# Sentinel: take the timeout from ClientSettings
USE_SETTINGS = object()


@runtime_checkable
class Transport(Protocol):
    """Anything able to deliver a request and return the response.

    Implementations are called at most once per logical request and must
    not retry on their own. Network failures are raised as TransportError.
    """

    def send(self, request: httpx.Request) -> httpx.Response:
        """Deliver a request and return the server's response."""
        ...


def build_request(
    settings: ClientSettings,
    method: str,
    path: str,
    *,
    session: Session | None = None,
    params: Mapping[str, str] | None = None,
    data: Mapping[str, str] | None = None,
    timeout: float | None | object = USE_SETTINGS,
) -> httpx.Request:
    """Build a self-contained request.

    Args:
        settings: Client settings (base URL, user agent, default timeout)
        method: HTTP method
        path: Endpoint path
        session: Session whose cookie is attached, if any
        params: Query parameters
        data: Form fields, sent url-encoded
        timeout: Per-request timeout in seconds; defaults to settings.timeout

    Returns:
        Request ready to be handed to a Transport
    """
    headers = {"User-Agent": settings.user_agent}
    if session is not None:
        # Explicit header rather than a cookie jar so recorded requests
        # stay valid on their own
        headers["Cookie"] = session.cookie_header

    if timeout is USE_SETTINGS:
        timeout = settings.timeout

    return httpx.Request(
        method,
        settings.url(path),
        params=params,
        headers=headers,
        data=dict(data) if data is not None else None,
        extensions={"timeout": httpx.Timeout(timeout).as_dict()},
    )


def form_fields(request: httpx.Request) -> dict[str, str]:
    """Decode the url-encoded form body of a request.

    Repeated fields keep their last value.
    """
    body = request.content.decode("utf-8")
    return {k: v[-1] for k, v in parse_qs(body, keep_blank_values=True).items()}


class HttpxTransport:
    """Transport sending requests over the network with httpx.

    Example:
        with HttpxTransport() as transport:
            client = Client.login("user@example.com", "secret", transport=transport)
    """

    def __init__(self, client: httpx.Client | None = None) -> None:
        """Initialize transport.

        Args:
            client: Client to send with. When omitted a new one is created
                and closed together with the transport.
        """
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client()

    def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request.

        Raises:
            TransportError: On any httpx failure (original exception chained)
        """
        logger.debug("%s %s", request.method, request.url.path)
        try:
            response = self._client.send(request)
            response.read()
        except httpx.HTTPError as e:
            raise TransportError(
                f"{request.method} {request.url.path} failed: {e}"
            ) from e
        logger.debug("%s %s -> %d", request.method, request.url.path, response.status_code)
        return response

    def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def _xml_response(request: httpx.Request, body: str) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Type": "text/xml"},
        text=body,
        request=request,
    )


def acknowledge(request: httpx.Request) -> httpx.Response | None:
    """Build an optimistic success response for a request, if possible.

    Mutations get the success marker the server would send; a session check
    is answered as valid. Other requests return None.
    """
    if request.url.path == LOGIN_CHECK_PATH:
        return _xml_response(request, '<response><ok accts_version="0"/></response>')

    if request.url.path != MUTATE_PATH:
        return None

    fields = form_fields(request)
    aid = fields.get("aid", "")
    if fields.get("delete") == "1":
        msg = "accountdeleted"
    elif aid in ("", "0"):
        # The real ID is only known once the request reaches the server
        msg, aid = "accountadded", ""
    else:
        msg = "accountupdated"
    return _xml_response(
        request,
        f'<xmlresponse><result aid="{aid}" msg="{msg}"/></xmlresponse>',
    )


class RecordingTransport:
    """Transport that records requests instead of sending them.

    Recorded requests are complete and can later be replayed through a live
    transport, even after the session that built them is gone.

    Attributes:
        requests: Recorded requests, in order
    """

    def __init__(
        self,
        responder: Callable[[httpx.Request], httpx.Response | None] | None = None,
    ) -> None:
        """Initialize transport.

        Args:
            responder: Callable producing the response for a recorded
                request, or None when it cannot answer. Defaults to
                acknowledge().
        """
        self.requests: list[httpx.Request] = []
        self._responder = responder if responder is not None else acknowledge

    def send(self, request: httpx.Request) -> httpx.Response:
        """Record a request and answer it locally.

        Only requests the responder answers are recorded.

        Raises:
            TransportError: If the request needs a real server to answer
        """
        response = self._responder(request)
        if response is None:
            raise TransportError(
                f"{request.method} {request.url.path} requires a live server"
            )

        self.requests.append(request)
        logger.debug("Recorded %s %s", request.method, request.url.path)
        return response

    def replay(self, transport: Transport) -> list[httpx.Response]:
        """Send every recorded request through another transport, then forget them.

        Args:
            transport: Live transport to deliver the requests

        Returns:
            Responses in recording order
        """
        responses = []
        while self.requests:
            request = self.requests[0]
            responses.append(transport.send(request))
            self.requests.pop(0)
        return responses
