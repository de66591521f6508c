import base64
import pathlib
import typing

import attr
import click.testing
import pytest

import sops_rekey.cli
from sops_rekey.keyring import KeyImporter, TrustStore
from sops_rekey.secrets import EncryptionEngine
from sops_rekey.utils import ToolError

HEADER = 'sops:'


def b64(text: str) -> str:
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def encrypted(path: pathlib.Path, *recipients: str) -> pathlib.Path:
    """Write a fake secret file that the recipients can decrypt."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(HEADER + ','.join(recipients) + '\n')
    return path


def readers(path: pathlib.Path) -> typing.List[str]:
    return path.read_text().strip()[len(HEADER):].split(',')


@attr.s
class FakeKeyring(KeyImporter):
    """Keeps the text of each imported key, the text is its fingerprint."""

    rejected: typing.Set[str] = attr.ib(factory=set)
    imported: typing.List[str] = attr.ib(factory=list)
    attempts: int = attr.ib(default=0)

    def import_key(self, path: pathlib.Path, store: TrustStore) -> None:
        assert path.parent == store.home
        self.attempts += 1
        text = path.read_text()
        if text in self.rejected:
            raise ToolError("gpg exited with status 2: no valid OpenPGP data found")
        if text not in self.imported:
            self.imported.append(text)

    def fingerprints(self, store: TrustStore) -> typing.Tuple[str, ...]:
        return tuple(self.imported)


@attr.s
class FakeEngine(EncryptionEngine):
    """
    Decrypts a file when one of its recipients is an imported private key,
    and rewrites the header with the new recipients when encrypting.
    """

    keyring: FakeKeyring = attr.ib()
    private: typing.Set[str] = attr.ib(factory=lambda: {'PRIMARY'})
    fail_decrypt: typing.Set[str] = attr.ib(factory=set)
    fail_encrypt: typing.Set[str] = attr.ib(factory=set)
    calls: typing.List[typing.Tuple[str, str]] = attr.ib(factory=list)

    def decrypt(self, path: pathlib.Path, store: TrustStore) -> None:
        self.calls.append(('decrypt', path.name))
        text = path.read_text()
        if path.name in self.fail_decrypt or not text.startswith(HEADER):
            raise ToolError(f"sops exited with status 128: Error unmarshalling {path}")
        usable = self.private.intersection(self.keyring.imported)
        if not usable.intersection(readers(path)):
            raise ToolError("sops exited with status 128: no key could decrypt the data key")

    def encrypt_in_place(
            self,
            path: pathlib.Path,
            store: TrustStore,
            recipients: typing.Sequence[str]) -> None:
        self.calls.append(('encrypt', path.name))
        if path.name in self.fail_encrypt:
            raise ToolError(f"sops exited with status 1: could not encrypt {path}")
        encrypted(path, *recipients)

    def version(self, store: TrustStore) -> str:
        return '3.10.2'


@pytest.fixture()
def store(tmp_path) -> TrustStore:
    return TrustStore(tmp_path / 'gnupg').create()


@pytest.fixture()
def keyring() -> FakeKeyring:
    return FakeKeyring()


@pytest.fixture()
def engine(keyring) -> FakeEngine:
    return FakeEngine(keyring)


@pytest.fixture()
def repository(tmp_path) -> pathlib.Path:
    path = tmp_path / 'repository'
    path.mkdir()
    return path


@pytest.fixture()
def invoke(monkeypatch, tmp_path, repository, keyring, engine):
    monkeypatch.setattr(sops_rekey.cli, 'GPG', lambda verbose: keyring)
    monkeypatch.setattr(sops_rekey.cli, 'SOPS', lambda verbose: engine)

    def invoke_func(arguments: typing.Sequence[str], **env: str) -> click.testing.Result:
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        return runner.invoke(sops_rekey.cli.main, [
            '--path', repository.as_posix(),
            '--gnupghome', (tmp_path / 'gnupg').as_posix(),
            *arguments,
        ], env={
            'INPUT_PRIVATE_KEY': None,
            'INPUT_PUBLIC_KEYS': None,
            'INPUT_FLUX_KEY': None,
            'INPUT_SECRETS_PATTERN': None,
            'INPUT_SOPS_VERSION': None,
            **env,
        })

    return invoke_func
