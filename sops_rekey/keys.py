"""
Collect encoded GPG keys from the roster of users with repository access and
the shared service key.
"""

import enum
import json
import logging
import typing

import attr

from .utils import CollectionError, KeyImportError

log = logging.getLogger(__name__)


class KeySource(enum.Enum):
    PRIMARY = 'primary'
    USER = 'user'
    SERVICE = 'service'


@attr.s(frozen=True, kw_only=True)
class KeyMaterial:
    encoded: str = attr.ib(repr=False)
    source: KeySource = attr.ib()
    label: str = attr.ib()

    def __str__(self):
        if self.source is KeySource.USER:
            return f"{self.source.value} key for {self.label}"
        return f"{self.source.value} key"


@attr.s(frozen=True)
class User:
    login: str = attr.ib()
    keys: typing.Tuple[str, ...] = attr.ib(default=())

    def materials(self) -> typing.Iterator[KeyMaterial]:
        for encoded in self.keys:
            yield KeyMaterial(
                encoded=encoded,
                source=KeySource.USER,
                label=self.login)


@attr.s(frozen=True)
class Roster:
    users: typing.Tuple[User, ...] = attr.ib(default=())

    @classmethod
    def from_json(cls, text: str) -> 'Roster':
        """
        Parse a roster in the form:

        \b
            {"users": [{"login": "...", "gpg_keys_base64": ["...", ...]}]}

        Blank text is an empty roster.
        """
        if not text or not text.strip():
            return cls()

        try:
            data = json.loads(text)
        except ValueError as error:
            raise CollectionError(f"Failed to parse users data: {error}")

        if not isinstance(data, dict) or not isinstance(data.get('users'), list):
            raise CollectionError(
                "Failed to parse users data: expected an object with a 'users' list")

        return cls(users=tuple(cls.parse_user(i, u) for i, u in enumerate(data['users'])))

    @staticmethod
    def parse_user(index: int, data: typing.Any) -> User:
        if not isinstance(data, dict):
            raise CollectionError(f"Failed to parse users data: user {index} is not an object")

        login = data.get('login')
        keys = data.get('gpg_keys_base64')

        if not isinstance(login, str):
            raise CollectionError(f"Failed to parse users data: user {index} has no login")

        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise CollectionError(
                f"Failed to parse users data: 'gpg_keys_base64' for {login} "
                f"must be a list of strings")

        return User(login=login, keys=tuple(keys))

    def keys(self) -> typing.Iterator[KeyMaterial]:
        for user in self.users:
            yield from user.materials()


def primary_key(encoded: typing.Optional[str]) -> KeyMaterial:
    if not encoded or not encoded.strip():
        raise KeyImportError("A primary private key is required")
    return KeyMaterial(encoded=encoded, source=KeySource.PRIMARY, label='primary')


def collect_public_keys(roster: str, service_key: str = '') -> typing.Tuple[KeyMaterial, ...]:
    """
    Flatten the roster into a list of keys, followed by the service key.

    Duplicate keys are passed through, importing them twice is harmless.
    """
    keys = list(Roster.from_json(roster).keys())
    log.info(f"Collected {len(keys)} keys from the users roster")

    if service_key and service_key.strip():
        keys.append(KeyMaterial(
            encoded=service_key,
            source=KeySource.SERVICE,
            label='service'))

    return tuple(keys)
