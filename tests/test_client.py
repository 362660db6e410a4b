"""Tests for the registry HTTP client."""

from unittest.mock import MagicMock

import pytest
import requests
import responses

from registry_ui.registry.client import (
    AuthError,
    HTTPError,
    NetworkError,
    RegistryClient,
)
from registry_ui.registry.endpoint import RegistryEndpoint

ENDPOINT = RegistryEndpoint("http", "registry.local:5000")
CATALOG_URL = "http://registry.local:5000/v2/_catalog"
BODY = b'{"repositories": ["library/nginx"]}'


class HeaderAuthenticator:
    """Authenticator stub that attaches a fixed header."""

    def __init__(self, value="Bearer test-token"):
        self.value = value
        self.calls = []

    def prepare(self, request):
        pass

    def authenticate(self, response, request):
        self.calls.append((response.status_code, request.url))
        request.headers["Authorization"] = self.value


class FailingAuthenticator:
    def prepare(self, request):
        pass

    def authenticate(self, response, request):
        raise AuthError("denied")


class TestGet:
    """Test plain requests without authentication."""

    @responses.activate
    def test_returns_body(self):
        responses.add(responses.GET, CATALOG_URL, body=BODY, status=200)
        client = RegistryClient(ENDPOINT)
        assert client.get("/v2/_catalog") == BODY
        assert len(responses.calls) == 1

    @responses.activate
    def test_non_2xx_raises_http_error(self):
        responses.add(responses.GET, CATALOG_URL, body="gone", status=404)
        client = RegistryClient(ENDPOINT)
        with pytest.raises(HTTPError) as excinfo:
            client.get("/v2/_catalog")
        assert excinfo.value.status == 404
        assert excinfo.value.url == CATALOG_URL
        assert len(responses.calls) == 1

    @responses.activate
    def test_server_error_is_not_retried(self):
        responses.add(responses.GET, CATALOG_URL, status=503)
        client = RegistryClient(ENDPOINT, HeaderAuthenticator())
        with pytest.raises(HTTPError) as excinfo:
            client.get("/v2/_catalog")
        assert excinfo.value.status == 503
        assert len(responses.calls) == 1

    @responses.activate
    def test_transport_failure_raises_network_error(self):
        responses.add(
            responses.GET,
            CATALOG_URL,
            body=requests.exceptions.ConnectionError("refused"),
        )
        client = RegistryClient(ENDPOINT)
        with pytest.raises(NetworkError) as excinfo:
            client.get("/v2/_catalog")
        assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)
        assert len(responses.calls) == 1

    def test_malformed_path_sends_nothing(self):
        session = MagicMock()
        client = RegistryClient(ENDPOINT, session=session)
        with pytest.raises(ValueError):
            client.get("v2/_catalog")
        session.send.assert_not_called()

    @responses.activate
    def test_disable_compression_header(self):
        responses.add(responses.GET, CATALOG_URL, body=BODY, status=200)
        client = RegistryClient(ENDPOINT, disable_compression=True)
        client.get("/v2/_catalog")
        assert responses.calls[0].request.headers["Accept-Encoding"] == "identity"

    def test_verify_is_passed_to_transport(self):
        session = MagicMock()
        session.send.return_value = MagicMock(status_code=200, content=BODY)
        client = RegistryClient(ENDPOINT, verify=False, session=session)
        assert client.get("/v2/_catalog") == BODY
        _, kwargs = session.send.call_args
        assert kwargs["verify"] is False
        assert kwargs["timeout"] is None


class TestChallengeRetry:
    """Test the single authentication retry on 401."""

    @responses.activate
    def test_retry_is_transparent(self):
        responses.add(
            responses.GET,
            CATALOG_URL,
            status=401,
            headers={"WWW-Authenticate": 'Bearer realm="https://auth.local/token"'},
        )
        responses.add(responses.GET, CATALOG_URL, body=BODY, status=200)
        auth = HeaderAuthenticator()
        client = RegistryClient(ENDPOINT, auth)

        assert client.get("/v2/_catalog") == BODY
        assert len(responses.calls) == 2
        assert responses.calls[1].request.headers["Authorization"] == "Bearer test-token"
        assert auth.calls == [(401, CATALOG_URL)]

    @responses.activate
    def test_second_401_is_not_retried(self):
        responses.add(responses.GET, CATALOG_URL, status=401)
        responses.add(responses.GET, CATALOG_URL, status=401)
        responses.add(responses.GET, CATALOG_URL, body=BODY, status=200)
        auth = HeaderAuthenticator()
        client = RegistryClient(ENDPOINT, auth)

        with pytest.raises(HTTPError) as excinfo:
            client.get("/v2/_catalog")
        assert excinfo.value.status == 401
        assert len(responses.calls) == 2
        assert len(auth.calls) == 1

    @responses.activate
    def test_retry_surfaces_other_status(self):
        responses.add(responses.GET, CATALOG_URL, status=401)
        responses.add(responses.GET, CATALOG_URL, status=403)
        client = RegistryClient(ENDPOINT, HeaderAuthenticator())
        with pytest.raises(HTTPError) as excinfo:
            client.get("/v2/_catalog")
        assert excinfo.value.status == 403

    @responses.activate
    def test_failed_authentication_raises_auth_error(self):
        responses.add(responses.GET, CATALOG_URL, status=401)
        client = RegistryClient(ENDPOINT, FailingAuthenticator())
        with pytest.raises(AuthError):
            client.get("/v2/_catalog")
        assert len(responses.calls) == 1

    @responses.activate
    def test_401_without_authenticator(self):
        responses.add(responses.GET, CATALOG_URL, status=401)
        client = RegistryClient(ENDPOINT)
        with pytest.raises(AuthError, match="no authenticator"):
            client.get("/v2/_catalog")
        assert len(responses.calls) == 1


class TestSessionLifecycle:
    """Test session ownership."""

    def test_injected_session_is_not_closed(self):
        session = MagicMock()
        with RegistryClient(ENDPOINT, session=session):
            pass
        session.close.assert_not_called()

    def test_owned_session_is_closed(self):
        client = RegistryClient(ENDPOINT)
        client._session = MagicMock()
        client.close()
        client._session.close.assert_called_once()
