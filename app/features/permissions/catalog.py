"""
Permission catalog.

The catalog is a fixed tree of permission nodes built once at import time
from ``PERMISSION_TABLE``. Nodes are stored in an arena keyed by their short
code; children are referenced by code, and the parent index is derived, so
there are no live back-pointers between nodes.

Granting an interior node grants the node itself and every descendant, so
``expand`` of an interior node contains its own code alongside the leaves.

Codes are persisted as override references and must stay stable across
releases.
"""
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from app.core.exceptions import UnknownPermissionCode


@dataclass(frozen=True)
class PermissionNode:
    code: str
    name: str
    children: tuple[str, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children


ROOT_CODE = "ROOT"

# (code, display name, child codes)
PERMISSION_TABLE: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("U_L", "ListUser", ()),
    ("U_C", "CreateUser", ()),
    ("U_DM", "ModifyUserData", ()),
    ("U_PM", "ModifyUserPermission", ()),
    ("U_D", "DeleteUser", ()),
    ("U", "User", ("U_L", "U_C", "U_DM", "U_PM", "U_D")),

    ("UA_L", "ListUserApplication", ()),
    ("UA_A", "ApproveUserApplication", ()),
    ("UA_R", "RejectUserApplication", ()),
    ("UA", "UserApplication", ("UA_L", "UA_A", "UA_R")),

    ("PR_L", "ListProviderRegistry", ()),
    ("PR_C", "CreateProviderRegistry", ()),
    ("PR_U", "UpdateProviderRegistry", ()),
    ("PR_D", "DeleteProviderRegistry", ()),
    ("PR", "ProviderRegistry", ("PR_L", "PR_C", "PR_U", "PR_D")),

    ("MR_L", "ListModelRegistry", ()),
    ("MR_C", "CreateModelRegistry", ()),
    ("MR_U", "UpdateModelRegistry", ()),
    ("MR_D", "DeleteModelRegistry", ()),
    ("MR", "ModelRegistry", ("MR_L", "MR_C", "MR_U", "MR_D")),

    ("CR_Ls", "ListSelfComputationResult", ()),
    ("CR_La", "ListAllComputationResult", ("CR_Ls",)),
    ("CR_Ts", "TagSelfComputationResult", ()),
    ("CR_Ta", "TagAllComputationResult", ("CR_Ts",)),
    ("CR", "ComputationResult", ("CR_La", "CR_Ta")),

    ("G", "Graph", ()),

    ("M_Ps", "SelfProviderMetrics", ()),
    ("M_Pa", "AllProviderMetrics", ("M_Ps",)),
    ("M_Ms", "SelfModelMetrics", ()),
    ("M_Ma", "AllModelMetrics", ("M_Ms",)),
    ("M_S", "SystemMetrics", ()),
    ("M", "Metrics", ("M_S", "M_Ma", "M_Pa")),

    (ROOT_CODE, "Root", ("U", "UA", "PR", "MR", "CR", "G", "M")),
)


class PermissionCatalog:
    """
    Read-only permission tree.

    Built once and never mutated afterwards, so it is safe to share between
    threads without locking. Construction validates the table and raises
    ``ValueError`` on duplicate codes, dangling children, nodes with more
    than one parent, cycles, or nodes unreachable from the root.
    """

    def __init__(self, table: Iterable[tuple[str, str, Iterable[str]]], root: str = ROOT_CODE):
        nodes: dict[str, PermissionNode] = {}
        for code, name, children in table:
            if code in nodes:
                raise ValueError(f"duplicate permission code {code!r}")
            nodes[code] = PermissionNode(code, name, tuple(children))

        parents: dict[str, str] = {}
        for node in nodes.values():
            for child in node.children:
                if child not in nodes:
                    raise ValueError(f"permission {node.code!r} references unknown child {child!r}")
                if child in parents:
                    raise ValueError(
                        f"permission {child!r} has more than one parent: {parents[child]!r}, {node.code!r}"
                    )
                parents[child] = node.code

        if root not in nodes:
            raise ValueError(f"root permission {root!r} is not in the table")
        if root in parents:
            raise ValueError(f"root permission {root!r} cannot have a parent")

        self._nodes: Mapping[str, PermissionNode] = nodes
        self._parents: Mapping[str, str] = parents
        self._root = root

        # Walk from the root once: detects cycles and unreachable nodes, and
        # memoizes every expansion so lookups afterwards are plain dict reads.
        self._expansions: dict[str, frozenset[str]] = {}
        self._expand_from(root, ())
        unreachable = set(nodes) - set(self._expansions)
        if unreachable:
            raise ValueError(f"permissions unreachable from {root!r}: {sorted(unreachable)}")

    def _expand_from(self, code: str, path: tuple[str, ...]) -> frozenset[str]:
        if code in path:
            raise ValueError(f"permission cycle through {' -> '.join(path + (code,))}")
        cached = self._expansions.get(code)
        if cached is not None:
            return cached
        node = self._nodes[code]
        result = {code}
        for child in node.children:
            result |= self._expand_from(child, path + (code,))
        expansion = frozenset(result)
        self._expansions[code] = expansion
        return expansion

    @property
    def root(self) -> PermissionNode:
        return self._nodes[self._root]

    def __contains__(self, code: object) -> bool:
        return code in self._nodes

    def __iter__(self):
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, code: str) -> PermissionNode:
        try:
            return self._nodes[code]
        except KeyError:
            raise UnknownPermissionCode(code) from None

    def expand(self, code: str) -> frozenset[str]:
        """Return ``code`` plus the codes of all of its descendants."""
        try:
            return self._expansions[code]
        except KeyError:
            raise UnknownPermissionCode(code) from None

    def expand_all(self, codes: Iterable[str]) -> frozenset[str]:
        result: set[str] = set()
        for code in codes:
            result |= self.expand(code)
        return frozenset(result)

    def covering(self, code: str) -> frozenset[str]:
        """Every code whose expansion contains ``code``: itself and its ancestors."""
        result = [self.get(code).code]
        while result[-1] in self._parents:
            result.append(self._parents[result[-1]])
        return frozenset(result)

    def codes(self) -> frozenset[str]:
        return frozenset(self._nodes)

    def leaves(self) -> frozenset[str]:
        return frozenset(code for code, node in self._nodes.items() if node.is_leaf)


catalog = PermissionCatalog(PERMISSION_TABLE)
