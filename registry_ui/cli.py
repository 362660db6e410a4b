"""CLI entry point for registry-ui."""

from __future__ import annotations

import logging
import sys

import click
import requests

from registry_ui.catalog import CatalogAggregator
from registry_ui.config import ConfigError, load_settings
from registry_ui.registry.auth import ChallengeAuthenticator, resolve_credentials
from registry_ui.registry.client import RegistryClient, RegistryError
from registry_ui.report.text import render_json, render_text

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable verbose (DEBUG) logging.",
)
def main(verbose: bool) -> None:
    """registry-ui: browse the catalog of a Docker registry."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@main.command()
@click.option(
    "-r",
    "--registry",
    "hub_uri",
    help="Registry URI (host[:port] or URL). Default: $REGISTRYUI_HUB_URI.",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML or JSON settings file.",
)
@click.option(
    "--account-mgmt/--no-account-mgmt",
    "account_mgmt_enabled",
    default=None,
    help="Flag the catalog as having account management enabled.",
)
@click.option(
    "--account-mgmt-config",
    "account_mgmt_config",
    help="Account management config file (required with --account-mgmt).",
)
@click.option(
    "--insecure",
    is_flag=True,
    default=None,
    help="Skip TLS certificate verification.",
)
@click.option(
    "--disable-compression",
    is_flag=True,
    default=None,
    help="Request uncompressed responses.",
)
@click.option(
    "--auth",
    "auth",
    multiple=True,
    help="Credentials in registry.host=user:pass format. Can be repeated.",
)
@click.option(
    "-f",
    "--format",
    "fmt",
    default="text",
    type=click.Choice(["text", "json"], case_sensitive=False),
    help="Output format (default: text).",
)
@click.option(
    "--pretty/--no-pretty",
    default=True,
    help="Pretty-print the JSON output (default: on).",
)
def catalog(
    hub_uri: str | None,
    config_path: str | None,
    account_mgmt_enabled: bool | None,
    account_mgmt_config: str | None,
    insecure: bool | None,
    disable_compression: bool | None,
    auth: tuple[str, ...],
    fmt: str,
    pretty: bool,
) -> None:
    """Print every repository of the registry, grouped by namespace."""
    try:
        settings = load_settings(
            config_path,
            hub_uri=hub_uri,
            account_mgmt_enabled=account_mgmt_enabled,
            account_mgmt_config=account_mgmt_config,
            insecure=insecure or None,
            disable_compression=disable_compression or None,
        )
        endpoint = settings.endpoint()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    username, password = resolve_credentials(
        endpoint.host, list(auth) if auth else None
    )
    if username:
        logger.debug("Using credentials of '%s' for %s", username, endpoint.host)
    verify = not settings.insecure

    click.echo(f"Fetching catalog from {endpoint}", err=True)
    with requests.Session() as session:
        authenticator = ChallengeAuthenticator(
            username, password, session=session, verify=verify
        )
        client = RegistryClient(
            endpoint,
            authenticator,
            verify=verify,
            disable_compression=settings.disable_compression,
            session=session,
        )
        aggregator = CatalogAggregator(
            client, account_mgmt_enabled=settings.account_mgmt_enabled
        )
        try:
            result = aggregator.fetch_catalog()
        except RegistryError as exc:
            raise click.ClickException(str(exc)) from exc

    if fmt == "json":
        click.echo(render_json(result, pretty=pretty))
    else:
        click.echo(render_text(result), nl=False)


@main.command()
def version() -> None:
    """Show the installed version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as dist_version

    try:
        current = dist_version("registry-ui")
    except PackageNotFoundError:
        current = "unknown"
    click.echo(f"registry-ui version {current}")


if __name__ == "__main__":
    main()
