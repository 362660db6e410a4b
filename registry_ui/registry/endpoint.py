"""Parse registry base URIs into endpoint components."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

_SUPPORTED_SCHEMES = ("http", "https")

# Bare hosts are plain HTTP.
_DEFAULT_SCHEME = "http"

_HOST_RE = re.compile(r"^[A-Za-z0-9.-]+(?::\d{1,5})?$|^\[[0-9A-Fa-f:.]+\](?::\d{1,5})?$")


@dataclass(frozen=True)
class RegistryEndpoint:
    """Base URI of a registry.

    Attributes:
        scheme: ``http`` or ``https``.
        host: Hostname with optional port (e.g. ``registry.local:5000``).
    """

    scheme: str
    host: str

    @property
    def base_url(self) -> str:
        """Return ``scheme://host`` without a trailing slash."""
        return f"{self.scheme}://{self.host}"

    def url(self, path: str) -> str:
        """Join a request path (e.g. ``/v2/_catalog``) to the endpoint.

        Raises:
            ValueError: If *path* is empty or malformed.
        """
        _check_path(path)
        return self.base_url + path

    def __str__(self) -> str:
        return self.base_url


def parse_endpoint(uri: str) -> RegistryEndpoint:
    """Parse a registry URI into a :class:`RegistryEndpoint`.

    Supported formats:

    * ``registry.example.com`` / ``localhost:5000`` (bare host, HTTP)
    * ``https://registry.example.com``
    * ``https://registry.example.com/v2/``

    Args:
        uri: The configured registry URI.

    Returns:
        A :class:`RegistryEndpoint`.

    Raises:
        ValueError: If the URI cannot be parsed.
    """
    uri = (uri or "").strip()
    if not uri:
        raise ValueError("Registry URI is empty")

    if "://" not in uri:
        uri = f"{_DEFAULT_SCHEME}://{uri}"

    parsed = urlparse(uri)
    scheme = parsed.scheme.lower()
    if scheme not in _SUPPORTED_SCHEMES:
        raise ValueError(f"Unsupported scheme '{parsed.scheme}' in registry URI: {uri}")

    host = parsed.netloc
    if "@" in host:
        raise ValueError(f"Credentials are not allowed in the registry URI: {uri}")
    if not host or not _HOST_RE.match(host):
        raise ValueError(f"Cannot extract registry host from URI: {uri}")

    path = parsed.path.rstrip("/")
    if path.endswith("/v2"):
        path = path[: -len("/v2")]
    if path or parsed.query or parsed.fragment:
        raise ValueError(f"Registry URI must not contain a path: {uri}")

    return RegistryEndpoint(scheme=scheme, host=host)


def _check_path(path: str) -> None:
    if not path:
        raise ValueError("Request path is empty")
    if not path.startswith("/") or path.startswith("//"):
        raise ValueError(f"Request path must be relative to the registry root: {path!r}")
    if any(ch.isspace() for ch in path):
        raise ValueError(f"Request path contains whitespace: {path!r}")
    if ".." in path.split("/"):
        raise ValueError(f"Request path contains a parent segment: {path!r}")
