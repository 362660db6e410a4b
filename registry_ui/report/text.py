"""Plain-text and JSON renderers for a :class:`Catalog`."""

from __future__ import annotations

import json

from jinja2 import Environment, StrictUndefined

from registry_ui.catalog import Catalog

_CATALOG_TEMPLATE = """\
Registry: {{ registry }}
Repositories [{{ image_count }}]:
{% for key, images in namespaces %}
  ➜ {{ key }} [{{ images | length }}]:
{% for image in images %}
      ➜ {{ image.name }}
          ➜ Tags: {{ image.tags | join(", ") if image.tags else "(none)" }}
{% endfor %}
{% endfor %}
"""

_env = Environment(
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=False,
    keep_trailing_newline=True,
    autoescape=False,
)


def render_text(catalog: Catalog) -> str:
    """Render *catalog* as an indented tree, namespaces sorted by key."""
    template = _env.from_string(_CATALOG_TEMPLATE)
    return template.render(
        registry=catalog.registry.base_url,
        image_count=catalog.image_count,
        namespaces=sorted(catalog.repositories.items()),
    )


def render_json(catalog: Catalog, pretty: bool = True) -> str:
    indent = 2 if pretty else None
    return json.dumps(catalog.to_dict(), indent=indent, ensure_ascii=False)
