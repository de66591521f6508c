import logging
import pathlib
import typing

import attr

from .commands import Tool
from .keyring import KeyImporter, TrustStore

log = logging.getLogger(__name__)


UNUSABLE = {'e': 'expired', 'r': 'revoked', 'd': 'disabled', 'i': 'invalid'}


def usable(pub: typing.Sequence[str]) -> typing.Optional[str]:
    """Return why a 'pub' record can't be encrypted to, or None if it can."""
    validity = pub[1] if len(pub) > 1 else ''
    if validity in UNUSABLE:
        return UNUSABLE[validity]
    if len(pub) <= 11 or 'E' not in pub[11]:
        return 'not capable of encryption'
    return None


def parse_fingerprints(colons: str) -> typing.Tuple[str, ...]:
    """
    Read primary key fingerprints from `gpg --with-colons` output.

    Only the 'fpr' record directly after a 'pub' record is kept, subkey
    fingerprints are ignored. Keys that can't be encrypted to are skipped.
    """
    fingerprints: typing.List[str] = []
    previous: typing.Sequence[str] = ()
    for line in colons.splitlines():
        fields = line.split(':')
        if fields[0] == 'fpr' and previous and previous[0] == 'pub' and len(fields) > 9:
            reason = usable(previous)
            if reason:
                log.warning(f"Not encrypting for key {fields[9]}: {reason}")
            else:
                fingerprints.append(fields[9])
        previous = fields
    return tuple(fingerprints)


@attr.s(frozen=True)
class GPG(Tool, KeyImporter):
    executable: str = attr.ib(default='gpg')

    def command(self, arguments: typing.Sequence[str]) -> typing.Tuple[str, ...]:
        return super().command(('--batch', '--no-tty', '--yes', *arguments))

    def import_key(self, path: pathlib.Path, store: TrustStore) -> None:
        log.debug(f"Importing {path} into {store.home}")
        self.run(['--import', str(path)], store)

    def fingerprints(self, store: TrustStore) -> typing.Tuple[str, ...]:
        result = self.run(['--with-colons', '--list-keys'], store)
        return parse_fingerprints(result.stdout)
