"""HTTP client for the Docker Registry V2 API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests

from registry_ui.registry.endpoint import RegistryEndpoint

if TYPE_CHECKING:
    from registry_ui.registry.auth import Authenticator

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when a registry API call fails."""


class NetworkError(RegistryError):
    """Raised when the transport fails (DNS, connect, TLS, read)."""


class AuthError(RegistryError):
    """Raised when a challenge was received but authentication failed."""


class HTTPError(RegistryError):
    """Raised when the registry answers with a non-2xx status.

    Attributes:
        status: The HTTP status code.
        url: The requested URL.
    """

    def __init__(self, status: int, url: str, detail: str = "") -> None:
        self.status = status
        self.url = url
        message = f"Registry returned {status} for {url}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class DecodeError(RegistryError):
    """Raised when a response body is not the expected JSON document."""


class RegistryClient:
    """Client for the Docker Registry V2 API.

    Sends plain GET requests and handles a single round of challenge-based
    authentication: on a ``401`` the configured authenticator attaches
    credentials to the request, which is then sent once more. Credentials
    the authenticator remembers are attached before the first send.

    Args:
        endpoint: The registry base URI.
        authenticator: Attaches remembered credentials before sending and
            answers a ``401`` challenge.
        verify: Verify TLS certificates.
        disable_compression: Ask the registry for uncompressed bodies.
        timeout: Transport timeout in seconds, ``None`` for no timeout.
        session: Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        endpoint: RegistryEndpoint,
        authenticator: Authenticator | None = None,
        *,
        verify: bool = True,
        disable_compression: bool = False,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.authenticator = authenticator
        self.verify = verify
        self.disable_compression = disable_compression
        self.timeout = timeout
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()

        if not verify:
            logger.warning(
                "TLS certificate verification is disabled for %s", endpoint
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, path: str) -> bytes:
        """GET *path* from the registry and return the raw response body.

        Args:
            path: Path relative to the registry root (e.g. ``/v2/_catalog``).

        Returns:
            The full response body.

        Raises:
            ValueError: If *path* is malformed (nothing is sent).
            NetworkError: If the transport fails.
            AuthError: If a challenge could not be answered.
            HTTPError: If the final response is not 2xx.
        """
        request = self._prepare(self.endpoint.url(path))
        if self.authenticator is not None:
            self.authenticator.prepare(request)

        resp = self._send(request)
        if resp.status_code == 401:
            self._authenticate(resp, request)
            logger.debug("Retrying GET %s with credentials", request.url)
            resp = self._send(request)

        if not 200 <= resp.status_code < 300:
            raise HTTPError(resp.status_code, str(request.url), resp.text[:200])

        return resp.content

    def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _prepare(self, url: str) -> requests.PreparedRequest:
        headers: dict[str, str] = {}
        if self.disable_compression:
            headers["Accept-Encoding"] = "identity"
        return self._session.prepare_request(
            requests.Request("GET", url, headers=headers)
        )

    def _send(self, request: requests.PreparedRequest) -> requests.Response:
        """Send *request* once, mapping transport failures to NetworkError."""
        logger.debug("GET %s", request.url)
        try:
            return self._session.send(
                request, verify=self.verify, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {request.url} failed: {exc}") from exc

    def _authenticate(
        self,
        response: requests.Response,
        request: requests.PreparedRequest,
    ) -> None:
        if self.authenticator is None:
            raise AuthError(
                f"Registry requires authentication for {request.url} "
                "but no authenticator is configured"
            )
        logger.debug(
            "Authenticating: %s", response.headers.get("WWW-Authenticate", "")
        )
        self.authenticator.authenticate(response, request)
