import pathlib
import typing

import click
import git


def find_git_directory() -> typing.Optional[pathlib.Path]:
    try:
        repo = git.Repo(search_parent_directories=True)
    except git.exc.InvalidGitRepositoryError:
        return None
    return pathlib.Path(repo.working_dir)


def default_directory() -> pathlib.Path:
    """The current git work tree, or the working directory outside of one."""
    return find_git_directory() or pathlib.Path.cwd()


class RekeyException(click.ClickException):
    pass


class CollectionError(RekeyException):
    """The roster of users and keys could not be parsed."""


class KeyImportError(RekeyException):
    """A key could not be decoded or imported into the trust store."""


class KeyDecodeError(KeyImportError):
    pass


class PatternError(RekeyException):
    """A file-match pattern was rejected."""


class ToolError(RekeyException):
    """An external tool exited with an error."""

    def __init__(self, message: str, stderr: str = '') -> None:
        super().__init__(message)
        self.stderr = stderr
