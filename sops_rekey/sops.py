import logging
import pathlib
import re
import typing

import attr

from .commands import Tool
from .keyring import TrustStore
from .secrets import EncryptionEngine

log = logging.getLogger(__name__)

VERSION_RE = re.compile(r'(\d+\.\d+\.\d+)')


@attr.s(frozen=True)
class SOPS(Tool, EncryptionEngine):
    executable: str = attr.ib(default='sops')

    def decrypt(self, path: pathlib.Path, store: TrustStore) -> None:
        """Decrypt a file, discarding the plaintext."""
        log.debug(f"Decrypting {path}")
        self.run(['--decrypt', str(path)], store)

    def encrypt_in_place(
            self,
            path: pathlib.Path,
            store: TrustStore,
            recipients: typing.Sequence[str]) -> None:
        log.debug(f"Encrypting {path} for {len(recipients)} recipients")
        args: typing.List[str] = ['--encrypt', '--in-place']
        if recipients:
            args += ['--pgp', ','.join(recipients)]
        args += [str(path)]
        self.run(args, store)

    def version(self, store: TrustStore) -> typing.Optional[str]:
        result = self.run(['--version'], store)
        match = VERSION_RE.search(result.stdout)
        return match.group(1) if match else None
