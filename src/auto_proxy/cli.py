"""auto-proxy command line interface."""

from __future__ import annotations

import functools
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import click

from auto_proxy import __version__
from auto_proxy.app import AppContext, build_app_context
from auto_proxy.config import load_settings
from auto_proxy.domain.errors import AutoProxyError
from auto_proxy.domain.models import MachineRequest, RecordKind
from auto_proxy.logging_utils import configure_logging, get_logger
from auto_proxy.orchestration.teardown import TeardownOutcome
from auto_proxy.providers import available_providers

F = TypeVar("F", bound=Callable[..., Any])

RECOMMENDED_SUFFIX = " (recommended)"


def _echo_line(stream: str, line: str) -> None:
    if stream == "stderr":
        click.echo(f"ERROR: {line}")
    else:
        click.echo(line)


def _context(provider: str | None = None) -> AppContext:
    settings = load_settings()
    if provider and provider != settings.provider.name:
        settings = settings.model_copy(
            update={"provider": settings.provider.model_copy(update={"name": provider})}
        )
    return build_app_context(settings, line_sink=_echo_line)


def _handle_errors(func: F) -> F:
    """Print one error line and exit 1 instead of a traceback."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (AutoProxyError, RuntimeError, ValueError) as exc:
            get_logger(func.__module__).error("%s failed: %s", func.__name__, exc)
            click.echo(f"Error: {exc}", err=True)
            raise SystemExit(1) from exc

    return wrapper  # type: ignore[return-value]


def _select(message: str, options: Sequence[str], default: str | None = None) -> str:
    if not options:
        raise click.ClickException(f"No options available for: {message}")
    if len(options) == 1:
        click.echo(f"{message} {options[0]}")
        return options[0]
    for index, option in enumerate(options, start=1):
        click.echo(f"  {index:3d}) {option}")
    default_index = options.index(default) + 1 if default in options else None
    choice = click.prompt(message, type=click.IntRange(1, len(options)), default=default_index)
    return options[choice - 1]


def default_proxy_name(zone: str) -> str:
    return "proxy-" + zone.replace("-", "")


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation.")
def main(log_level: str | None) -> None:
    """Provision and tear down single-host Shadowsocks proxies."""
    try:
        configure_logging(log_level)
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@_handle_errors
def create() -> None:
    """Interactively create, configure and record a new proxy."""
    platform = _select(
        "Choose a cloud platform:", available_providers(), default=load_settings().provider.name
    )
    ctx = _context(platform)
    provider = ctx.provider

    regions = provider.list_regions()
    location = _select(
        "Choose a region:",
        ctx.regions.labels(regions),
        default=ctx.regions.label(ctx.settings.provider.default_region or ""),
    )
    region = ctx.regions.region_for(location)

    zone = _select("Choose a zone:", provider.list_zones(region))

    recommended = provider.recommended_type()
    machine_types = [
        mt + RECOMMENDED_SUFFIX if mt == recommended else mt
        for mt in provider.list_machine_types(zone)
    ]
    selected = _select(
        "Choose a machine type:", machine_types, default=recommended + RECOMMENDED_SUFFIX
    )
    machine_type = selected.removesuffix(RECOMMENDED_SUFFIX)

    request = MachineRequest(
        name=default_proxy_name(zone), zone=zone, machine_type=machine_type, region=region
    )
    record = ctx.provisioning().provision(request)

    service = ctx.configurator.service
    click.echo(
        f"Shadowsocks proxy created at: {record.ip}:{service.port}\n"
        f" - Name: {record.name}\n"
        " - Protocol: Shadowsocks\n"
        f" - Password: {service.password}\n"
        f" - Encryption: {service.method}"
    )


@main.command()
@click.option("--name", "-name", "name", default="", help="Name of the proxy to delete.")
@_handle_errors
def delete(name: str) -> None:
    """Delete a proxy's instance and boot disk."""
    if not name:
        click.echo("Error: Proxy name is required", err=True)
        click.echo("Usage: auto-proxy delete -name <proxy-name>")
        click.echo("Example: auto-proxy delete -name proxy-useast1a")
        click.echo("To see available proxies, run: auto-proxy list")
        raise SystemExit(1)

    result = _context().teardown().teardown(name)
    if result.outcome is TeardownOutcome.NOT_FOUND:
        click.echo(f"Proxy not found: {name}")
        return
    click.echo(f"Proxy deleted: {name}")
    if result.outcome is TeardownOutcome.PARTIAL:
        click.echo(
            f"Warning: boot disk {result.orphaned_disk} could not be deleted; "
            "it is recorded and can be retried with: auto-proxy reclaim"
        )


@main.command(name="list")
@_handle_errors
def list_proxies() -> None:
    """List recorded proxies and orphaned disks."""
    records = _context().store.load()
    if not records:
        click.echo("No proxies found.")
        return
    for record in records:
        if record.kind is RecordKind.DISK:
            click.echo(
                f"Orphaned disk: {record.instance_id}, Proxy: {record.name}, "
                f"Zone: {record.zone}"
            )
            continue
        click.echo(
            f"Name: {record.name}, IP: {record.ip}, "
            f"Region: {record.location or record.region}, Zone: {record.zone}"
        )


@main.command()
@_handle_errors
def reclaim() -> None:
    """Retry deletion of disks left behind by earlier deletes."""
    result = _context().teardown().reclaim_orphans()
    if not result.reclaimed and not result.remaining:
        click.echo("No orphaned disks recorded.")
        return
    for disk_id in result.reclaimed:
        click.echo(f"Disk deleted: {disk_id}")
    for disk_id in result.remaining:
        click.echo(f"Disk still pending deletion: {disk_id}")


if __name__ == "__main__":  # pragma: no cover
    main()
