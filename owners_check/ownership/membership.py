import logging
from collections.abc import (
    Callable,
    Iterable,
    Mapping,
)
from dataclasses import (
    dataclass,
    field,
)
from types import MappingProxyType
from typing import Protocol

from owners_check.ownership.identity import (
    OwnerIdentity,
    normalize_handle,
)

_LOG = logging.getLogger(__name__)


class MembershipResolutionError(Exception):
    pass


class UnknownGroupError(MembershipResolutionError):
    pass


class MembershipResolver(Protocol):
    def members_of(self, group: str) -> Iterable[str]:
        ...


class TeamDirectory(MembershipResolver, Protocol):
    def list_groups(self) -> list[str]:
        ...


@dataclass(frozen=True)
class MembershipSnapshot:
    """
    Resolved group memberships, fixed for one evaluation cycle.

    A snapshot is never mutated. Refreshing a group produces a new
    snapshot which the caller substitutes for the old one.
    """

    groups: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {
            normalize_handle(name): frozenset(
                normalize_handle(member) for member in self.groups[name]
            )
            for name in sorted(self.groups)
        }
        object.__setattr__(self, "groups", MappingProxyType(frozen))

    @classmethod
    def empty(cls) -> "MembershipSnapshot":
        return cls()

    def __contains__(self, group: object) -> bool:
        return isinstance(group, str) and normalize_handle(group) in self.groups

    def members_of(self, group: str) -> frozenset[str]:
        try:
            return self.groups[normalize_handle(group)]
        except KeyError:
            raise UnknownGroupError(f"unknown group {group}") from None

    def expand(self, identity: OwnerIdentity) -> frozenset[str]:
        if not identity.is_group:
            return frozenset([identity.name])
        return self.groups.get(identity.name, frozenset())

    def with_group(self, group: str, members: Iterable[str]) -> "MembershipSnapshot":
        groups = dict(self.groups)
        groups[group] = frozenset(members)
        return MembershipSnapshot(groups)


class CachingMembershipResolver:
    """
    Wraps a resolver so that every group is looked up at most once per
    tree build. Failed lookups are remembered as well and raise the same
    error again.
    """

    def __init__(self, resolver: MembershipResolver):
        self._resolver = resolver
        self._members: dict[str, frozenset[str]] = {}
        self._failures: dict[str, MembershipResolutionError] = {}

    def members_of(self, group: str) -> frozenset[str]:
        if group in self._failures:
            raise self._failures[group]
        if group not in self._members:
            try:
                self._members[group] = frozenset(self._resolver.members_of(group))
            except MembershipResolutionError as e:
                self._failures[group] = e
                raise
        return self._members[group]

    def snapshot(self) -> MembershipSnapshot:
        return MembershipSnapshot(self._members)


def sync_membership(
    directory: TeamDirectory,
    sleep: Callable[[float], None],
    delay: float,
) -> MembershipSnapshot:
    """
    Fetches the member list of every group known to the directory, one
    request at a time with a fixed delay in between to stay clear of rate
    limits. Groups that fail to resolve are left out of the snapshot.
    """
    groups: dict[str, frozenset[str]] = {}
    for group in directory.list_groups():
        try:
            groups[group] = frozenset(directory.members_of(group))
        except MembershipResolutionError as e:
            _LOG.warning(f"unable to fetch members of {group}: {e}")
        sleep(delay)
    return MembershipSnapshot(groups)
