"""Authentication for the Docker Registry."""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from pathlib import Path
from typing import Protocol

import requests
from requests.auth import HTTPBasicAuth

from registry_ui.registry.client import AuthError

logger = logging.getLogger(__name__)

_PARAM_RE = re.compile(r'([A-Za-z0-9_-]+)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|([^,\s]*))')

ENV_PREFIX = "REGISTRYUI_"


class Authenticator(Protocol):
    """Answers a registry authentication challenge.

    :meth:`prepare` runs before every first send and may attach credentials
    remembered from an earlier challenge. :meth:`authenticate` runs on a
    ``401`` and must attach credentials to *request* so it can be sent
    again, or raise :class:`AuthError`.
    """

    def prepare(self, request: requests.PreparedRequest) -> None: ...

    def authenticate(
        self,
        response: requests.Response,
        request: requests.PreparedRequest,
    ) -> None: ...


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """Parse a ``WWW-Authenticate`` header.

    ``Bearer realm="https://auth.example.com/token",service="registry"``
    becomes ``("bearer", {"realm": ..., "service": "registry"})``.

    Returns:
        The lowercased scheme and its parameters. The scheme is empty when
        the header is empty.
    """
    header = header.strip()
    if not header:
        return "", {}

    scheme, _, rest = header.partition(" ")
    params: dict[str, str] = {}
    for match in _PARAM_RE.finditer(rest):
        key, quoted, bare = match.groups()
        value = quoted if quoted is not None else bare
        params[key.lower()] = value.replace('\\"', '"')
    return scheme.lower(), params


class BasicAuthenticator:
    """Answer ``Basic`` challenges with a username and password.

    Once the registry has asked for credentials they are sent with every
    following request.
    """

    def __init__(self, username: str | None, password: str | None) -> None:
        self.username = username
        self.password = password
        self._challenged = False

    def prepare(self, request: requests.PreparedRequest) -> None:
        if self._challenged:
            HTTPBasicAuth(self.username, self.password)(request)

    def authenticate(
        self,
        response: requests.Response,
        request: requests.PreparedRequest,
    ) -> None:
        if not self.username or not self.password:
            raise AuthError(f"Registry requires credentials for {request.url}")
        HTTPBasicAuth(self.username, self.password)(request)
        self._challenged = True


class TokenAuthenticator:
    """Answer ``Bearer`` challenges by fetching a token from the realm.

    Tokens are kept per ``(realm, service, scope)``. The last one issued is
    attached up front to the next request, like a session cookie; a ``401``
    for a scope that already has a token fetches a fresh one only when that
    token was the one just rejected.

    Args:
        username: Optional account name sent to the token service.
        password: Optional password sent to the token service.
        session: Session used for the token request.
        verify: Verify TLS certificates of the token service.
        timeout: Token request timeout in seconds.
    """

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        *,
        session: requests.Session | None = None,
        verify: bool = True,
        timeout: float | None = None,
    ) -> None:
        self.username = username
        self.password = password
        self.verify = verify
        self.timeout = timeout
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self._tokens: dict[tuple[str, str | None, str | None], str] = {}
        self._last_token: str | None = None

    def prepare(self, request: requests.PreparedRequest) -> None:
        if self._last_token:
            request.headers["Authorization"] = f"Bearer {self._last_token}"

    def authenticate(
        self,
        response: requests.Response,
        request: requests.PreparedRequest,
    ) -> None:
        _, params = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        realm = params.get("realm")
        if not realm:
            raise AuthError("Bearer challenge does not name a token realm")

        key = (realm, params.get("service"), params.get("scope"))
        token = self._tokens.get(key)
        if token is None or request.headers.get("Authorization") == f"Bearer {token}":
            token = self._fetch_token(realm, params)
            self._tokens[key] = token
        else:
            logger.debug("Reusing token for scope %s", key[2])

        self._last_token = token
        request.headers["Authorization"] = f"Bearer {token}"

    def close(self) -> None:
        """Close the token session if this authenticator created it."""
        if self._owns_session:
            self._session.close()

    def _fetch_token(self, realm: str, params: dict[str, str]) -> str:
        query = {k: params[k] for k in ("service", "scope") if k in params}
        logger.debug(
            "Requesting token: realm=%s service=%s scope=%s",
            realm,
            query.get("service"),
            query.get("scope"),
        )

        auth = None
        if self.username and self.password:
            auth = (self.username, self.password)

        try:
            token_resp = self._session.get(
                realm,
                params=query,
                auth=auth,
                verify=self.verify,
                timeout=self.timeout,
            )
            token_resp.raise_for_status()
            payload = token_resp.json()
        except requests.RequestException as exc:
            raise AuthError(f"Token request to {realm} failed: {exc}") from exc
        except ValueError as exc:
            raise AuthError(f"Token service {realm} returned invalid JSON") from exc

        token = None
        if isinstance(payload, dict):
            token = payload.get("token") or payload.get("access_token")
        if not token:
            raise AuthError(f"Token service {realm} returned no token")
        return str(token)


class ChallengeAuthenticator:
    """Pick the authentication scheme from the registry's challenge.

    ``Basic`` challenges are answered with the configured credentials,
    ``Bearer`` challenges through the token service named in the challenge.
    Credentials of the last scheme used are attached to later requests.
    """

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        *,
        session: requests.Session | None = None,
        verify: bool = True,
        timeout: float | None = None,
    ) -> None:
        self.username = username
        self.password = password
        self._basic = BasicAuthenticator(username, password)
        self._token = TokenAuthenticator(
            username, password, session=session, verify=verify, timeout=timeout
        )
        self._active: BasicAuthenticator | TokenAuthenticator | None = None

    def prepare(self, request: requests.PreparedRequest) -> None:
        if self._active is not None:
            self._active.prepare(request)

    def authenticate(
        self,
        response: requests.Response,
        request: requests.PreparedRequest,
    ) -> None:
        scheme, _ = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if scheme == "basic":
            handler: BasicAuthenticator | TokenAuthenticator = self._basic
        elif scheme == "bearer":
            handler = self._token
        elif not scheme:
            raise AuthError(f"Registry sent 401 without a challenge for {request.url}")
        else:
            raise AuthError(f"Unsupported authentication scheme '{scheme}'")

        handler.authenticate(response, request)
        self._active = handler

    def close(self) -> None:
        self._token.close()


def resolve_credentials(
    registry: str,
    cli_auths: list[str] | None = None,
) -> tuple[str | None, str | None]:
    """Find the account to present to *registry*.

    Sources, first match wins:

    * ``--auth host=user:pass`` values whose host equals *registry*
    * ``REGISTRYUI_AUTH_<HOST>_USERNAME`` / ``_PASSWORD``, with the host
      upper-cased and ``.``, ``:`` and ``-`` turned into ``_``
    * ``REGISTRYUI_USERNAME`` / ``REGISTRYUI_PASSWORD``
    * the ``auths`` section of ``~/.docker/config.json``, as written by
      ``docker login``

    Args:
        registry: Registry host with optional port, as in the endpoint.
        cli_auths: Raw ``--auth`` values.

    Returns:
        ``(username, password)``, or ``(None, None)`` for anonymous access.
    """
    for source, creds in (
        ("--auth", _from_cli(registry, cli_auths or [])),
        ("host env vars", _from_env(f"{ENV_PREFIX}AUTH_{_env_host(registry)}_")),
        ("global env vars", _from_env(ENV_PREFIX)),
    ):
        if creds is not None:
            logger.debug("Credentials for %s taken from %s", registry, source)
            return creds

    return _docker_config_credentials(registry)


def _from_cli(registry: str, values: list[str]) -> tuple[str, str] | None:
    for value in values:
        host, sep, creds = value.partition("=")
        if sep and host == registry and ":" in creds:
            user, pwd = creds.split(":", 1)
            return user, pwd
    return None


def _from_env(prefix: str) -> tuple[str, str] | None:
    user = os.environ.get(f"{prefix}USERNAME")
    pwd = os.environ.get(f"{prefix}PASSWORD")
    if user and pwd:
        return user, pwd
    return None


def _env_host(registry: str) -> str:
    return re.sub(r"[.:-]", "_", registry.upper())


def _docker_config_credentials(registry: str) -> tuple[str | None, str | None]:
    """Look *registry* up in ``~/.docker/config.json``."""
    config_path = Path.home() / ".docker" / "config.json"
    if not config_path.exists():
        return None, None

    try:
        with open(config_path, encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, ValueError) as exc:
        logger.debug("Failed to read %s: %s", config_path, exc)
        return None, None

    auths = config.get("auths", {}) if isinstance(config, dict) else {}
    for candidate in (
        registry,
        f"https://{registry}",
        f"http://{registry}",
        f"https://{registry}/v2/",
    ):
        entry = auths.get(candidate)
        if not isinstance(entry, dict) or "auth" not in entry:
            continue
        try:
            auth_str = base64.b64decode(entry["auth"]).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            logger.debug("Failed to decode auth from config.json for %s: %s", candidate, exc)
            continue
        if ":" in auth_str:
            user, pwd = auth_str.split(":", 1)
            logger.debug("Credentials for %s taken from %s", registry, config_path)
            return user, pwd

    return None, None
