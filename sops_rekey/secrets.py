import enum
import functools
import logging
import pathlib
import typing

import attr

from .keyring import TrustStore
from .utils import ToolError

log = logging.getLogger(__name__)


class EncryptionEngine:
    def decrypt(self, path: pathlib.Path, store: TrustStore) -> None:
        raise NotImplementedError

    def encrypt_in_place(
            self,
            path: pathlib.Path,
            store: TrustStore,
            recipients: typing.Sequence[str]) -> None:
        raise NotImplementedError


class State(enum.Enum):
    PENDING = 'pending'
    VERIFYING = 'verifying'
    VERIFY_FAILED = 'verify failed'
    VERIFIED = 'verified'
    COMMITTING = 'committing'
    COMMIT_FAILED = 'commit failed'
    COMMITTED = 'committed'

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self]


TRANSITIONS: typing.Dict[State, typing.FrozenSet[State]] = {
    State.PENDING: frozenset({State.VERIFYING}),
    State.VERIFYING: frozenset({State.VERIFY_FAILED, State.VERIFIED}),
    State.VERIFY_FAILED: frozenset(),
    State.VERIFIED: frozenset({State.COMMITTING}),
    State.COMMITTING: frozenset({State.COMMIT_FAILED, State.COMMITTED}),
    State.COMMIT_FAILED: frozenset(),
    State.COMMITTED: frozenset(),
}


@attr.s(kw_only=True)
class Secret:
    path: pathlib.Path = attr.ib()
    state: State = attr.ib(default=State.PENDING)

    def __str__(self):
        return str(self.path)

    def advance(self, state: State) -> None:
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"{self} can't move from {self.state.value} to {state.value}")
        log.debug(f"{self}: {self.state.value} -> {state.value}")
        self.state = state


@attr.s(frozen=True, kw_only=True)
class Outcome:
    path: pathlib.Path = attr.ib()
    state: State = attr.ib()
    error: typing.Optional[str] = attr.ib(default=None)

    @property
    def ok(self) -> bool:
        return self.state is State.COMMITTED


@attr.s(frozen=True)
class BatchResult:
    outcomes: typing.Tuple[Outcome, ...] = attr.ib(default=())

    def add(self, outcome: Outcome) -> 'BatchResult':
        return attr.evolve(self, outcomes=(*self.outcomes, outcome))

    @property
    def successes(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failures(self) -> typing.List[typing.Tuple[pathlib.Path, str]]:
        return [(o.path, o.error or o.state.value) for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)


def ignore(outcome: Outcome) -> None:
    pass


@attr.s(frozen=True, kw_only=True)
class Rekeyer:
    """
    Re-encrypt files for every public key in a trust store.

    Each file is decrypted first, proving it is a valid encrypted file we hold
    a key for, and is only rewritten once that has succeeded. A failure is
    recorded against that file and the next file is processed.
    """

    store: TrustStore = attr.ib()
    engine: EncryptionEngine = attr.ib()
    recipients: typing.Tuple[str, ...] = attr.ib(default=(), converter=tuple)
    report: typing.Callable[[Outcome], None] = attr.ib(default=ignore)

    def rekey(self, path: pathlib.Path) -> Outcome:
        secret = Secret(path=path)

        secret.advance(State.VERIFYING)
        try:
            self.engine.decrypt(path, self.store)
        except (ToolError, OSError) as error:
            secret.advance(State.VERIFY_FAILED)
            return Outcome(path=path, state=secret.state, error=f"Failed to decrypt {path}: {error}")
        secret.advance(State.VERIFIED)

        secret.advance(State.COMMITTING)
        try:
            self.engine.encrypt_in_place(path, self.store, self.recipients)
        except (ToolError, OSError) as error:
            secret.advance(State.COMMIT_FAILED)
            return Outcome(path=path, state=secret.state, error=f"Failed to re-encrypt {path}: {error}")
        secret.advance(State.COMMITTED)

        return Outcome(path=path, state=secret.state)

    def step(self, result: BatchResult, path: pathlib.Path) -> BatchResult:
        outcome = self.rekey(path)
        if outcome.error:
            log.debug(outcome.error)
        self.report(outcome)
        return result.add(outcome)

    def run(self, paths: typing.Iterable[pathlib.Path]) -> BatchResult:
        result = functools.reduce(self.step, paths, BatchResult())
        log.info(f"Re-encrypted {result.successes} of {len(result.outcomes)} files")
        return result
