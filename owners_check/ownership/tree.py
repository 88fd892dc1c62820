from collections.abc import (
    Iterable,
    Mapping,
    Sequence,
)
from dataclasses import (
    dataclass,
    field,
)
from types import MappingProxyType

from owners_check.ownership.membership import MembershipSnapshot
from owners_check.ownership.rules import (
    ROOT_PATH,
    OwnerRule,
    canonical_path,
    path_components,
)

ROOT_NODE_ID = 0


@dataclass(frozen=True)
class OwnersNode:
    path: str
    rules: tuple[OwnerRule, ...] = ()
    children: Mapping[str, int] = field(default_factory=dict)
    parent: int | None = None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class OwnersTree:
    """
    Read-only ownership tree. Nodes live in an arena and are addressed by
    id; ``children`` maps a directory name to the id of its node and the
    path index maps every directory path to its node id.
    """

    def __init__(
        self,
        nodes: Sequence[OwnersNode],
        membership: MembershipSnapshot | None = None,
    ):
        if not nodes or nodes[ROOT_NODE_ID].path != ROOT_PATH:
            raise ValueError("the first node of an owners tree must be the root")
        self._nodes = tuple(nodes)
        self._index = MappingProxyType(
            {node.path: node_id for node_id, node in enumerate(self._nodes)}
        )
        self.membership = membership or MembershipSnapshot.empty()

    @classmethod
    def empty(cls) -> "OwnersTree":
        return cls([OwnersNode(path=ROOT_PATH)])

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and canonical_path(path) in self._index

    @property
    def root(self) -> OwnersNode:
        return self._nodes[ROOT_NODE_ID]

    def node(self, path: str) -> OwnersNode | None:
        node_id = self._index.get(canonical_path(path))
        if node_id is None:
            return None
        return self._nodes[node_id]

    def node_by_id(self, node_id: int) -> OwnersNode:
        return self._nodes[node_id]

    def _walk(self, file_path: str) -> list[OwnersNode]:
        """Nodes from the root down to the deepest directory containing the file."""
        directories = path_components(canonical_path(file_path))[:-1]
        node = self.root
        visited = [node]
        for name in directories:
            child_id = node.children.get(name)
            if child_id is None:
                break
            node = self._nodes[child_id]
            visited.append(node)
        return visited

    def rule_levels(self, file_path: str) -> tuple[tuple[OwnerRule, ...], ...]:
        """
        Rules applying to a file grouped by declaring directory, the most
        specific directory first. Directories without an applicable rule
        are left out.
        """
        path = canonical_path(file_path)
        levels = []
        for node in reversed(self._walk(path)):
            rules = tuple(r for r in node.rules if r.matches(path))
            if rules:
                levels.append(rules)
        return tuple(levels)

    def rules_for(self, file_path: str) -> tuple[OwnerRule, ...]:
        path = canonical_path(file_path)
        return tuple(
            rule
            for node in self._walk(path)
            for rule in node.rules
            if rule.matches(path)
        )

    def all_rules(self) -> list[OwnerRule]:
        return [rule for node in self._nodes for rule in node.rules]

    def render(self) -> str:
        lines: list[str] = []
        self._render(ROOT_NODE_ID, 0, lines)
        return "\n".join(lines)

    def _render(self, node_id: int, depth: int, lines: list[str]) -> None:
        node = self._nodes[node_id]
        indent = "  " * depth
        lines.append(f"{indent}{node.name if depth else ROOT_PATH}/")
        for rule in node.rules:
            lines.append(f"{indent}  - {rule.describe()}")
        for name in sorted(node.children):
            self._render(node.children[name], depth + 1, lines)


class OwnersTreeBuilder:
    """
    Collects rules per directory and creates intermediate directory nodes
    on demand, so that every declared directory is reachable from the root.
    """

    def __init__(self) -> None:
        self._paths: list[str] = [ROOT_PATH]
        self._rules: list[list[OwnerRule]] = [[]]
        self._children: list[dict[str, int]] = [{}]
        self._parents: list[int | None] = [None]
        self._index: dict[str, int] = {ROOT_PATH: ROOT_NODE_ID}

    def _ensure_node(self, path: str) -> int:
        if path in self._index:
            return self._index[path]

        node_id = ROOT_NODE_ID
        current = []
        for name in path_components(path):
            current.append(name)
            child_id = self._children[node_id].get(name)
            if child_id is None:
                child_id = len(self._paths)
                self._paths.append("/".join(current))
                self._rules.append([])
                self._children.append({})
                self._parents.append(node_id)
                self._children[node_id][name] = child_id
                self._index["/".join(current)] = child_id
            node_id = child_id
        return node_id

    def add_rules(self, path: str, rules: Iterable[OwnerRule]) -> None:
        node_id = self._ensure_node(canonical_path(path))
        self._rules[node_id].extend(rules)

    def build(self, membership: MembershipSnapshot | None = None) -> OwnersTree:
        nodes = [
            OwnersNode(
                path=self._paths[node_id],
                rules=tuple(self._rules[node_id]),
                children=MappingProxyType(dict(self._children[node_id])),
                parent=self._parents[node_id],
            )
            for node_id in range(len(self._paths))
        ]
        return OwnersTree(nodes, membership)
