import logging
import subprocess
import typing

import attr

from .keyring import TrustStore
from .utils import ToolError

log = logging.getLogger(__name__)


@attr.s(frozen=True)
class Tool:
    """An external command that runs against a trust store."""

    executable: str = attr.ib()
    verbose: bool = attr.ib(default=False)

    def command(self, arguments: typing.Sequence[str]) -> typing.Tuple[str, ...]:
        command: typing.Tuple[str, ...] = (self.executable,)
        if self.verbose:
            command = (*command, '--verbose')
        return (*command, *arguments)

    def run(self,
            arguments: typing.Sequence[str],
            store: TrustStore,
            stdin: typing.Optional[str] = None) -> subprocess.CompletedProcess:
        command = self.command(arguments)
        log.debug(f"Running {' '.join(command)}")
        try:
            return subprocess.run(
                command,
                encoding='utf-8',
                errors='replace',
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=store.environ(),
                check=True)
        except subprocess.CalledProcessError as error:
            for line in error.stderr.splitlines():
                log.debug(line)
            raise ToolError(
                f"{self.executable} exited with status {error.returncode}: "
                f"{error.stderr.strip()}",
                stderr=error.stderr)
