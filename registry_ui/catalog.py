"""Catalog aggregation: repositories grouped by namespace with their tags."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from typing import Any, Iterable

import jsonschema

from registry_ui.registry.client import DecodeError, RegistryClient
from registry_ui.registry.endpoint import RegistryEndpoint

logger = logging.getLogger(__name__)

#: Namespace key for repositories without a ``/`` in their name.
SENTINEL_NAMESPACE = "-"

CATALOG_PATH = "/v2/_catalog"


@dataclass
class Image:
    """A repository and its tags.

    Attributes:
        name: Full repository name (e.g. ``library/nginx``).
        tags: Tags in the order the registry returned them.
    """

    name: str
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Image name must not be empty")


@dataclass
class Catalog:
    """Repositories of a registry grouped by namespace."""

    account_mgmt_enabled: bool
    registry: RegistryEndpoint
    repositories: dict[str, list[Image]] = field(default_factory=dict)

    @property
    def image_count(self) -> int:
        return sum(len(images) for images in self.repositories.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_mgmt_enabled": self.account_mgmt_enabled,
            "registry": self.registry.base_url,
            "repositories": {
                key: [{"name": img.name, "tags": list(img.tags)} for img in images]
                for key, images in self.repositories.items()
            },
        }


def namespace_key(name: str) -> str:
    """Return the grouping key of a repository name.

    ``library/nginx`` → ``library``; ``standalone`` → ``-``.
    """
    if "/" in name:
        return name.split("/", 1)[0]
    return SENTINEL_NAMESPACE


def group_images(images: Iterable[Image]) -> dict[str, list[Image]]:
    """Group *images* by namespace key, keeping their relative order."""
    grouped: dict[str, list[Image]] = {}
    for image in images:
        grouped.setdefault(namespace_key(image.name), []).append(image)
    return grouped


def tags_path(name: str) -> str:
    return f"/v2/{name}/tags/list"


class CatalogAggregator:
    """Build a :class:`Catalog` from a registry.

    Issues one catalog request followed by one tag-list request per
    repository, sequentially. The first failure aborts the whole fetch.

    Args:
        client: The registry client.
        account_mgmt_enabled: Passed through verbatim into the catalog.
    """

    def __init__(
        self,
        client: RegistryClient,
        *,
        account_mgmt_enabled: bool = False,
    ) -> None:
        self.client = client
        self.account_mgmt_enabled = account_mgmt_enabled

    def list_repositories(self) -> list[str]:
        """Return repository names in registry order.

        Raises:
            RegistryError: If the request fails or the body is not a catalog.
        """
        data = self._get_json(CATALOG_PATH, "catalog.schema.json")
        return list(data["repositories"])

    def fetch_image(self, name: str) -> Image:
        """Return the :class:`Image` for repository *name*.

        Raises:
            RegistryError: If the request fails or the body is not a tag list.
        """
        data = self._get_json(tags_path(name), "tags.schema.json")
        reported = data.get("name")
        if reported and reported != name:
            logger.warning(
                "Registry answered tag list for '%s' with name '%s'", name, reported
            )
        return Image(name=name, tags=list(data.get("tags") or []))

    def fetch_catalog(self) -> Catalog:
        """Fetch every repository with its tags and group them by namespace.

        Raises:
            RegistryError: On the first failing request or undecodable body.
                No partial catalog is returned.
        """
        names = self.list_repositories()
        logger.debug("Registry %s lists %d repositories", self.client.endpoint, len(names))

        images = [self.fetch_image(name) for name in names]

        return Catalog(
            account_mgmt_enabled=self.account_mgmt_enabled,
            registry=self.client.endpoint,
            repositories=group_images(images),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get_json(self, path: str, schema_file: str) -> dict[str, Any]:
        body = self.client.get(path)
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise DecodeError(f"Invalid JSON in response to {path}: {exc}") from exc

        try:
            jsonschema.validate(instance=data, schema=_load_schema(schema_file))
        except jsonschema.ValidationError as exc:
            raise DecodeError(
                f"Unexpected response to {path}: {exc.message}"
            ) from exc
        return data  # type: ignore[no-any-return]


@lru_cache(maxsize=None)
def _load_schema(schema_file: str) -> dict[str, Any]:
    """Load a JSON Schema file from the ``registry_ui.schemas`` package."""
    schema_ref = resources.files("registry_ui.schemas").joinpath(schema_file)
    return json.loads(schema_ref.read_text(encoding="utf-8"))  # type: ignore[no-any-return]
