"""
Each Locator can be converted to a list of files to re-encrypt.
"""

import fnmatch
import logging
import os
import pathlib
import stat
import typing

import attr

from .utils import PatternError

log = logging.getLogger(__name__)

DEFAULT_PATTERN = '**/application.secrets.env'

Paths = typing.Tuple[pathlib.Path, ...]
Parts = typing.Sequence[str]


def has_magic(part: str) -> bool:
    return any(c in part for c in '*?[')


def match(pattern: Parts, parts: Parts) -> bool:
    """Match path components against glob components, '**' spans any number of them."""
    if not pattern:
        return not parts

    head, rest = pattern[0], pattern[1:]
    if head == '**':
        return any(match(rest, parts[i:]) for i in range(len(parts) + 1))

    return bool(parts) and fnmatch.fnmatchcase(parts[0], head) and match(rest, parts[1:])


class Locator:
    def search(self, directory: pathlib.Path) -> Paths:
        raise NotImplementedError


@attr.s(frozen=True)
class PatternLocator(Locator):
    """
    Select regular files matching a glob pattern.

    Relative patterns are matched under the search directory and absolute
    patterns from their root. Directories that can't be read are logged and
    skipped.
    """

    pattern: str = attr.ib(default=DEFAULT_PATTERN)

    def search(self, directory: pathlib.Path) -> Paths:
        log.info(f"Searching for files matching {self.pattern} in {directory}")
        root, pattern = self.split(directory)

        files = tuple(sorted(set(p for p in self.walk(root, pattern) if self.is_file(p))))
        log.info(f"Found {len(files)} files matching {self.pattern}")
        return files

    def split(self, directory: pathlib.Path) -> typing.Tuple[pathlib.Path, Parts]:
        """Split the pattern into the directory to walk and the components to match."""
        if not self.pattern or not self.pattern.strip():
            raise PatternError("The file pattern is empty")

        path = pathlib.PurePath(self.pattern)
        parts = path.parts[1:] if path.anchor else path.parts
        if not parts:
            raise PatternError(f"The file pattern {self.pattern!r} only names a root")

        root = pathlib.Path(path.anchor) if path.anchor else directory
        parts = list(parts)
        while len(parts) > 1 and not has_magic(parts[0]):
            root = root / parts.pop(0)
        return root, tuple(parts)

    @staticmethod
    def walk(root: pathlib.Path, pattern: Parts) -> typing.Iterator[pathlib.Path]:
        if not root.is_dir():
            return

        def onerror(error: OSError) -> None:
            log.warning(f"Glob error: {error}")

        for dirpath, _, filenames in os.walk(root, onerror=onerror):
            base = pathlib.Path(dirpath)
            relative = base.relative_to(root).parts
            for name in filenames:
                if match(pattern, (*relative, name)):
                    yield base / name

    @staticmethod
    def is_file(path: pathlib.Path) -> bool:
        """Check a match is a regular file, logging any error reading it."""
        try:
            return stat.S_ISREG(path.stat().st_mode)
        except OSError as error:
            log.warning(f"Glob error: {error}")
            return False
