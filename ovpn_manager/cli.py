"""
OpenVPN client manager CLI.

Entry point ``ovpn-clients``. Every lifecycle error exits with the status
code of its kind so scripts can tell a conflict from a broken store.
"""

import functools
import logging
import os
import sys
from pathlib import Path

import click
import yaml
from pydantic import ValidationError

from ovpn_manager.exceptions import CredentialError
from ovpn_manager.models.crl import RevocationReason
from ovpn_manager.services.config_service import CONFIG_ENV_VAR, ConfigService
from ovpn_manager.services.container import build_services
from ovpn_manager.utils.logger import setup_logger

logger = logging.getLogger("ovpn_manager")

INVALID_IDENTITY_EXIT = 2


def handle_errors(func):
    """Map lifecycle errors to messages on stderr and exit codes."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CredentialError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(e.exit_code)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(INVALID_IDENTITY_EXIT)

    return wrapper


def _services(ctx: click.Context, require_initialized: bool = True):
    return build_services(ctx.obj["config"], require_initialized=require_initialized)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Config file (default: ${CONFIG_ENV_VAR} or ./config.yaml)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Manage OpenVPN client credentials."""
    try:
        config = ConfigService.load(config_path)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise click.ClickException(f"Cannot load configuration: {e}")

    if verbose:
        config.logging.level = "DEBUG"
    setup_logger(config)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = ConfigService.resolve_path(config_path)


@cli.command()
@click.pass_context
@handle_errors
def init(ctx):
    """Create the CA, server certificate, tls-auth secret and an empty CRL."""
    status = _services(ctx, require_initialized=False).authority.initialize()
    click.echo(f"Initialized certificate authority {status.ca_subject}")
    click.echo(f"Server certificate: {status.server_name}")


@cli.command()
@click.pass_context
@handle_errors
def status(ctx):
    """Show the state of the certificate authority."""
    info = _services(ctx, require_initialized=False).authority.status()
    if not info.initialized:
        click.echo(f"No certificate authority in {info.pki_dir}")
        return
    click.echo(f"CA:        {info.ca_subject} (expires {info.ca_expires_at:%Y-%m-%d})")
    click.echo(f"Server:    {info.server_name}")
    click.echo(f"Issued:    {info.issued_count}")
    click.echo(f"Revoked:   {info.revoked_count}")
    if info.crl:
        click.echo(f"CRL:       #{info.crl.crl_number}, next update {info.crl.next_update:%Y-%m-%d}")


@cli.command()
@click.argument("identity")
@click.option("--replace", is_flag=True, help="Revoke an existing credential and issue a new one")
@click.pass_context
@handle_errors
def issue(ctx, identity, replace):
    """Issue a credential for IDENTITY and write its .ovpn bundle."""
    bundle = _services(ctx).provision(identity, replace=replace)
    click.echo(bundle.path)


@cli.command()
@click.argument("identity")
@click.option(
    "--reason",
    type=click.Choice([r.value for r in RevocationReason]),
    default=RevocationReason.UNSPECIFIED.value,
    show_default=True,
    help="Revocation reason recorded in the CRL",
)
@click.pass_context
@handle_errors
def revoke(ctx, identity, reason):
    """Revoke the credential of IDENTITY and publish the new CRL."""
    record = _services(ctx).revocations.revoke(identity, RevocationReason(reason))
    click.echo(f"Revoked {identity} (serial {record.serial}, reason {record.reason.value})")


@cli.command("list")
@click.pass_context
@handle_errors
def list_clients(ctx):
    """List identities holding an Issued credential."""
    for identity in _services(ctx).registry.list():
        click.echo(identity)


@cli.command()
@click.argument("identity")
@click.pass_context
@handle_errors
def show(ctx, identity):
    """Show details of the credential of IDENTITY."""
    credential = _services(ctx).registry.get(identity)
    click.echo(f"Identity:    {credential.identity}")
    click.echo(f"Subject:     {credential.subject}")
    click.echo(f"Serial:      {credential.serial}")
    click.echo(f"Status:      {credential.status.name}")
    if credential.issued_at:
        click.echo(f"Issued:      {credential.issued_at:%Y-%m-%d %H:%M:%S %Z}")
    click.echo(f"Expires:     {credential.expires_at:%Y-%m-%d %H:%M:%S %Z}")
    if credential.fingerprint_sha256:
        click.echo(f"SHA256:      {credential.fingerprint_sha256}")
    click.echo(f"Bundle:      {credential.bundle_path or '-'}")


@cli.command()
@click.argument("identity")
@click.pass_context
@handle_errors
def bundle(ctx, identity):
    """Rebuild the .ovpn bundle of IDENTITY."""
    result = _services(ctx).rebuild_bundle(identity)
    click.echo(result.path)


@cli.command()
@click.option("--regenerate", is_flag=True, help="Re-sign and publish the CRL")
@click.option("--revoked", "show_revoked", is_flag=True, help="List revoked credentials")
@click.pass_context
@handle_errors
def crl(ctx, regenerate, show_revoked):
    """Show (or regenerate) the certificate revocation list."""
    services = _services(ctx)
    info = services.revocations.regenerate_crl() if regenerate else services.revocations.crl_info()
    click.echo(f"CRL number:   {info.crl_number}")
    click.echo(f"Revoked:      {info.revoked_count}")
    click.echo(f"Last update:  {info.last_update:%Y-%m-%d %H:%M:%S %Z}")
    if info.next_update:
        click.echo(f"Next update:  {info.next_update:%Y-%m-%d %H:%M:%S %Z}")
    if show_revoked:
        for record in services.registry.revoked():
            click.echo(f"{record.serial}\t{record.identity}\t{record.revoked_at:%Y-%m-%d}\t{record.reason.value}")


@cli.command()
@click.pass_context
@handle_errors
def cleanup(ctx):
    """Move key material the index does not reflect as Issued to the trash."""
    store = _services(ctx).store
    with store.exclusive():
        moved = store.quarantine_orphans()
    for path in moved:
        click.echo(str(path))
    click.echo(f"Moved {len(moved)} orphaned file(s) to {store.trash_dir}")


@cli.command()
@click.option("--host", default="localhost", help="Host to bind to")
@click.option("--port", default=8000, help="Port to listen on")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API."""
    import uvicorn

    os.environ[CONFIG_ENV_VAR] = str(ctx.obj["config_path"])
    uvicorn.run("main:app", host=host, port=port, reload=ctx.obj["config"].app.debug)


if __name__ == "__main__":
    cli()
