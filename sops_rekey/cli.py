import functools
import logging
import os.path
import pathlib
import typing

import attr
import click

from . import __doc__, __version__
from .gpg import GPG
from .keyring import Keyring, TrustStore, default_home
from .keys import collect_public_keys, primary_key
from .locator import DEFAULT_PATTERN, PatternLocator
from .secrets import Outcome, Rekeyer
from .sops import SOPS
from .utils import RekeyException, ToolError, default_directory

log = logging.getLogger(__name__)


@functools.lru_cache()
def rel(path: pathlib.Path) -> str:
    """
    Convert a path to a relative Path.

    Returns a string as these should only be used for presentation.
    """
    return os.path.relpath(path.as_posix(), pathlib.Path.cwd().as_posix())


def styled(path: pathlib.Path) -> str:
    """Style a path to a secret file."""
    return click.style(rel(path), fg='green')


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


@attr.s(frozen=True, kw_only=True)
class Workspace:
    directory: pathlib.Path = attr.ib()
    store: TrustStore = attr.ib()
    gpg: GPG = attr.ib()
    sops: SOPS = attr.ib()


private_key_option = click.option(
    '--private-key', 'private_key',
    metavar='BASE64',
    envvar='INPUT_PRIVATE_KEY',
    required=True,
    type=click.STRING,
    help="Base64 encoded GPG private key that can decrypt the secrets.")

public_keys_option = click.option(
    '--public-keys', 'public_keys',
    metavar='JSON',
    envvar='INPUT_PUBLIC_KEYS',
    default='{"users":[]}',
    show_default=True,
    type=click.STRING,
    help="Users with access to the repository and their base64 encoded GPG keys.")

service_key_option = click.option(
    '--service-key', 'service_key',
    metavar='BASE64',
    envvar='INPUT_FLUX_KEY',
    default='',
    type=click.STRING,
    help="Base64 encoded GPG public key for a deployment service (e.g. Flux).")

pattern_option = click.option(
    '--pattern', 'pattern',
    metavar='GLOB',
    envvar='INPUT_SECRETS_PATTERN',
    default=DEFAULT_PATTERN,
    show_default=True,
    type=click.STRING,
    help="Glob pattern selecting the secret files to re-encrypt.")

sops_version_option = click.option(
    '--sops-version', 'sops_version',
    metavar='VERSION',
    envvar='INPUT_SOPS_VERSION',
    default=None,
    type=click.STRING,
    help="Expected sops version, a mismatch only prints a warning.")


@click.group(help=__doc__)
@click.option(
    '-p', '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    default=default_directory,
    required=True,
    help="Defaults to the current git repository.")
@click.option(
    '-g', '--gnupghome',
    type=PathType(file_okay=False, dir_okay=True),
    envvar='GNUPGHOME',
    default=default_home,
    help="GnuPG home directory used as the trust store. Defaults to ~/.gnupg. "
         "Files are encrypted for every usable public key in it, not just "
         "the keys imported by this run.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.option(
    '-v', '--verbose', 'tool_verbose',
    default=False,
    is_flag=True,
    help="Run gpg and sops with --verbose.")
@click.pass_context
def main(
        ctx,
        debug: bool,
        path: pathlib.Path,
        gnupghome: pathlib.Path,
        tool_verbose: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = Workspace(
        directory=path,
        store=TrustStore(gnupghome),
        gpg=GPG(verbose=tool_verbose),
        sops=SOPS(verbose=tool_verbose))


@main.command()
def version():
    """Show the application version."""
    click.echo(f"sops-rekey {__version__}")


@main.command()
@pattern_option
@click.pass_obj
def ls(ws: Workspace, pattern: str):
    """List the secret files a pattern selects."""
    for path in PatternLocator(pattern).search(ws.directory):
        click.echo(styled(path))


@main.command()
@public_keys_option
@service_key_option
def keys(public_keys: str, service_key: str):
    """List the public keys that files will be encrypted for."""
    for material in collect_public_keys(public_keys, service_key):
        click.echo(f"{material.source.value}\t{material.label}")


def check_version(sops: SOPS, store: TrustStore, expected: str) -> None:
    try:
        found = sops.version(store)
    except (ToolError, OSError) as error:
        log.warning(f"Could not check the sops version: {error}")
        return

    if found != expected.lstrip('v'):
        log.warning(f"Expected sops {expected} but found {found}")


def report(outcome: Outcome) -> None:
    if outcome.ok:
        click.echo(f"Successfully re-encrypted: {styled(outcome.path)}")
    else:
        click.secho(f"Error re-encrypting {rel(outcome.path)}: {outcome.error}", fg='red', err=True)


@main.command()
@private_key_option
@public_keys_option
@service_key_option
@pattern_option
@sops_version_option
@click.pass_context
def rekey(
        ctx,
        private_key: str,
        public_keys: str,
        service_key: str,
        pattern: str,
        sops_version: typing.Optional[str]):
    """
    Re-encrypt secret files for every user with access to the repository.

    Each file matching the pattern is decrypted with the private key and
    encrypted again for the private key, every user's public keys and the
    service key. Files that fail are reported and the rest are still
    re-encrypted.
    """
    ws: Workspace = ctx.obj

    try:
        store = ws.store.create()
    except OSError as error:
        raise RekeyException(f"Failed to create GPG home directory: {error}")

    keyring = Keyring(store, ws.gpg)

    click.echo("Importing GPG private key...")
    keyring.import_primary(primary_key(private_key))

    click.echo("Collecting public keys...")
    materials = collect_public_keys(public_keys, service_key)
    click.echo(f"Found {len(materials)} public keys")
    if materials:
        keyring.import_public(materials)

    if sops_version:
        check_version(ws.sops, store, sops_version)

    click.echo(f"Finding secret files matching pattern: {pattern}")
    files = PatternLocator(pattern).search(ws.directory)
    click.echo(f"Found {len(files)} secret file(s)")

    if not files:
        click.echo(f"No secret files found matching pattern: {pattern}")
        return

    rekeyer = Rekeyer(
        store=store,
        engine=ws.sops,
        recipients=ws.gpg.fingerprints(store),
        report=report)
    result = rekeyer.run(files)

    click.echo("\nRe-encryption complete:")
    click.secho(f"  Success: {result.successes}", fg='green')
    if not result.ok:
        click.secho(f"  Errors: {len(result.failures)}", fg='red')
        ctx.exit(1)
