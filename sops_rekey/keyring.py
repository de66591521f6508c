import base64
import binascii
import logging
import os
import pathlib
import tempfile
import typing

import attr

from .keys import KeyMaterial
from .utils import KeyDecodeError, KeyImportError, RekeyException

log = logging.getLogger(__name__)


def default_home() -> pathlib.Path:
    return pathlib.Path(os.environ.get('HOME') or '/tmp') / '.gnupg'


@attr.s(frozen=True)
class TrustStore:
    """A GnuPG home directory used for every gpg and sops call in a run."""

    home: pathlib.Path = attr.ib(converter=pathlib.Path)

    def create(self) -> 'TrustStore':
        if not self.home.exists():
            log.debug(f"Creating trust store in {self.home}")
        self.home.mkdir(mode=0o700, parents=True, exist_ok=True)
        return self

    def environ(self) -> typing.Dict[str, str]:
        return {**os.environ, 'GNUPGHOME': self.home.as_posix()}

    def artifact(self, label: str) -> pathlib.Path:
        """Create an empty, uniquely named file for a key inside the store."""
        fd, name = tempfile.mkstemp(prefix=f'{label}-', suffix='.asc', dir=self.home)
        os.close(fd)
        return pathlib.Path(name)


class KeyImporter:
    def import_key(self, path: pathlib.Path, store: TrustStore) -> None:
        raise NotImplementedError

    def fingerprints(self, store: TrustStore) -> typing.Tuple[str, ...]:
        raise NotImplementedError


def decode_key(material: KeyMaterial) -> str:
    """Decode a base64 encoded key into the armoured text gpg can import."""
    try:
        data = base64.b64decode(material.encoded.strip(), validate=True)
    except binascii.Error as error:
        raise KeyDecodeError(f"Failed to decode {material}: {error}")

    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as error:
        raise KeyDecodeError(f"Failed to convert {material} to text: {error}")


@attr.s(frozen=True)
class Keyring:
    store: TrustStore = attr.ib()
    importer: KeyImporter = attr.ib()

    def register(self, material: KeyMaterial) -> None:
        text = decode_key(material)
        artifact = self.store.artifact(material.source.value)
        try:
            artifact.write_text(text, encoding='utf-8')
            log.debug(f"Importing {material} from {artifact}")
            self.importer.import_key(artifact, self.store)
        finally:
            artifact.unlink()

    def import_primary(self, material: KeyMaterial) -> None:
        """Import the private key, any failure makes the run impossible."""
        try:
            self.register(material)
        except KeyImportError:
            raise
        except (RekeyException, OSError) as error:
            raise KeyImportError(f"Failed to import private key: {error}")
        log.info("Imported the primary private key")

    def import_public(
            self,
            materials: typing.Sequence[KeyMaterial]) -> typing.Tuple[KeyMaterial, ...]:
        """
        Import every key that can be imported.

        Keys that can't be decoded or that gpg rejects are skipped with a
        warning; they only narrow who can decrypt the files afterwards.
        """
        imported: typing.List[KeyMaterial] = []

        for index, material in enumerate(materials):
            try:
                self.register(material)
            except (RekeyException, OSError) as error:
                log.warning(f"Skipping key {index} ({material}): {error}")
                continue
            imported.append(material)

        if materials and not imported:
            log.warning(
                f"None of the {len(materials)} public keys were imported, "
                f"files will only be encrypted for keys already in {self.store.home}")

        log.info(f"Imported {len(imported)} of {len(materials)} public keys")
        return tuple(imported)
