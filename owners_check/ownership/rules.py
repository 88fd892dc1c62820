import posixpath
from dataclasses import dataclass
from fnmatch import fnmatchcase

from owners_check.ownership.identity import OwnerIdentity

ROOT_PATH = "."


class InvalidPathError(Exception):
    pass


def canonical_path(path: str) -> str:
    """
    Normalizes a repository path: slash separated, no leading or trailing
    slash. The repository root is ``.``.
    """
    parts = [p for p in path.replace("\\", "/").split("/") if p and p != "."]
    if ".." in parts:
        raise InvalidPathError(f"path {path!r} escapes the repository root")
    return "/".join(parts) or ROOT_PATH


def path_components(path: str) -> list[str]:
    if path == ROOT_PATH:
        return []
    return path.split("/")


def relative_to(path: str, directory: str) -> str:
    if directory == ROOT_PATH:
        return path
    return path[len(directory) + 1 :]


def is_ancestor_or_self(directory: str, path: str) -> bool:
    return directory == ROOT_PATH or path == directory or path.startswith(
        directory + "/"
    )


@dataclass(frozen=True)
class OwnerRule:
    """
    Binds a directory, optionally narrowed to files matching ``scope``,
    to the identities allowed to approve changes below it.
    """

    path: str
    owners: tuple[OwnerIdentity, ...]
    scope: str | None = None
    required_count: int = 1
    allow_fallback: bool = True
    reviewers: tuple[OwnerIdentity, ...] = ()
    source: str = ""

    def matches(self, file_path: str) -> bool:
        if not is_ancestor_or_self(self.path, file_path):
            return False
        if self.scope is None:
            return True
        if "/" in self.scope:
            return fnmatchcase(relative_to(file_path, self.path), self.scope)
        return fnmatchcase(posixpath.basename(file_path), self.scope)

    def describe(self) -> str:
        owners = ", ".join(o.name for o in self.owners)
        desc = f"{self.path}"
        if self.scope:
            desc += f" ({self.scope})"
        desc += f": {owners}"
        if self.required_count > 1:
            desc += f" [{self.required_count} required]"
        if not self.allow_fallback:
            desc += " [no parent owners]"
        return desc
