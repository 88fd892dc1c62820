import re
from dataclasses import dataclass
from enum import Enum

GITHUB_LOGIN_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")
TEAM_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class InvalidIdentityError(Exception):
    pass


class IdentityKind(Enum):
    USER = "user"
    GROUP = "group"


@dataclass(frozen=True, order=True)
class OwnerIdentity:
    """
    An owner declared in an OWNERS file. Either an individual account
    handle (``alice``) or a reference to a named group (``my-org/team``)
    whose members are resolved through the membership snapshot.
    """

    name: str
    kind: IdentityKind = IdentityKind.USER

    @property
    def is_group(self) -> bool:
        return self.kind == IdentityKind.GROUP

    def __str__(self) -> str:
        return self.name


def normalize_handle(handle: str) -> str:
    """
    GitHub logins and team references are case-insensitive.
    """
    return handle.strip().removeprefix("@").lower()


def parse_identity(raw: str) -> OwnerIdentity:
    if not isinstance(raw, str):
        raise InvalidIdentityError(f"owner must be a string, got {raw!r}")

    name = normalize_handle(raw)
    if "/" in name:
        org, _, team = name.partition("/")
        if not GITHUB_LOGIN_RE.match(org) or not TEAM_SLUG_RE.match(team):
            raise InvalidIdentityError(f"invalid group reference {raw!r}")
        return OwnerIdentity(name=f"{org}/{team}", kind=IdentityKind.GROUP)

    if not GITHUB_LOGIN_RE.match(name):
        raise InvalidIdentityError(f"invalid account handle {raw!r}")
    return OwnerIdentity(name=name)
