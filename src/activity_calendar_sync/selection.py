"""
Tri-state selection over the project → track → subtrack → item hierarchy.

Nodes live in a flat map keyed by composite path strings. Downward cascades
walk a child index built once from the hierarchy; upward recomputation walks
the ancestor keys derived from the path itself, so nodes never point at their
parents.
"""

from collections.abc import Iterable
from collections.abc import Iterator
from dataclasses import dataclass

from activity_calendar_sync.hierarchy import KEY_SEPARATOR
from activity_calendar_sync.hierarchy import ProjectHierarchy
from activity_calendar_sync.hierarchy import check_node_id
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import SyncEntry

NONE = "none"
PARTIAL = "partial"
ALL = "all"


@dataclass(frozen=True)
class NodePath:
    project_id: str
    track_id: str | None = None
    subtrack_id: str | None = None
    item_id: str | None = None

    def __post_init__(self):
        check_node_id(self.project_id, "project")
        for kind, value in (
            ("track", self.track_id),
            ("subtrack", self.subtrack_id),
            ("item", self.item_id),
        ):
            if value is not None:
                check_node_id(value, kind)

    @property
    def key(self) -> str:
        return KEY_SEPARATOR.join(
            (self.project_id, self.track_id or "", self.subtrack_id or "", self.item_id or "")
        )

    @classmethod
    def from_key(cls, key: str) -> "NodePath":
        parts = key.split(KEY_SEPARATOR)
        if len(parts) > 4 or not parts[0]:
            raise ValueError(f"Invalid selection key: {key!r}")
        parts += [""] * (4 - len(parts))
        return cls(*(p or None for p in parts))

    @classmethod
    def from_entry(cls, entry: SyncEntry) -> "NodePath":
        return cls(entry.project_id, entry.track_id, entry.subtrack_id, entry.item_id)

    def to_entry(self, owner_id: str) -> SyncEntry:
        return SyncEntry(owner_id, self.project_id, self.track_id, self.subtrack_id, self.item_id)

    def ancestors(self) -> list["NodePath"]:
        """Ancestor paths, nearest first."""
        chain = []
        if self.item_id and self.subtrack_id:
            chain.append(NodePath(self.project_id, self.track_id, self.subtrack_id))
        if (self.item_id or self.subtrack_id) and self.track_id:
            chain.append(NodePath(self.project_id, self.track_id))
        if self.track_id:
            chain.append(NodePath(self.project_id))
        return chain

    def covers(self, other: "NodePath") -> bool:
        """True if ``other`` is this node or one of its descendants."""
        return (
            self.project_id == other.project_id
            and (self.track_id is None or self.track_id == other.track_id)
            and (self.subtrack_id is None or self.subtrack_id == other.subtrack_id)
            and (self.item_id is None or self.item_id == other.item_id)
        )


@dataclass
class SelectionNode:
    path: NodePath
    selected: bool
    indeterminate: bool = False


class SelectionTree:
    """Interactive selection state for one loaded hierarchy."""

    def __init__(self, hierarchy: list[ProjectHierarchy]):
        self.hierarchy = hierarchy
        self.nodes: dict[str, SelectionNode] = {}
        self._paths: dict[str, NodePath] = {}
        self._children: dict[str, list[NodePath]] = {}
        self._leaf_count: dict[str, int] = {}
        self._items: dict[str, ExternalItem] = {}
        self._roots: list[NodePath] = []
        self._index()

    # ------------------------------------------------------------------ #
    # Index                                                                #
    # ------------------------------------------------------------------ #

    def _add(self, path: NodePath, children: list[NodePath]):
        self._paths[path.key] = path
        self._children[path.key] = children

    def _index(self):
        for project in self.hierarchy:
            project_path = NodePath(project.id)
            track_paths = []
            for track in project.tracks:
                track_path = NodePath(project.id, track.id)
                track_children = []
                for subtrack in track.subtracks:
                    sub_path = NodePath(project.id, track.id, subtrack.id)
                    item_paths = [
                        NodePath(project.id, track.id, subtrack.id, item.id)
                        for item in subtrack.items
                    ]
                    for item, item_path in zip(subtrack.items, item_paths):
                        self._add(item_path, [])
                        self._items[item_path.key] = item
                    self._add(sub_path, item_paths)
                    track_children.append(sub_path)
                for item in track.items:
                    item_path = NodePath(project.id, track.id, None, item.id)
                    self._add(item_path, [])
                    self._items[item_path.key] = item
                    track_children.append(item_path)
                self._add(track_path, track_children)
                track_paths.append(track_path)
            self._add(project_path, track_paths)
            self._roots.append(project_path)

        for root in self._roots:
            self._count_leaves(root)

    def _count_leaves(self, path: NodePath) -> int:
        children = self._children[path.key]
        if path.item_id:
            count = 1
        else:
            count = sum(self._count_leaves(child) for child in children)
        self._leaf_count[path.key] = count
        return count

    def _walk(self, path: NodePath) -> Iterator[NodePath]:
        yield path
        for child in self._children[path.key]:
            yield from self._walk(child)

    def _require(self, path: NodePath):
        if path.key not in self._paths:
            raise KeyError(f"Unknown selection node: {path.key}")

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    def state(self, path: NodePath) -> str:
        node = self.nodes.get(path.key)
        if node is None:
            return NONE
        if node.indeterminate:
            return PARTIAL
        return ALL if node.selected else NONE

    def is_selected(self, path: NodePath) -> bool:
        return self.state(path) == ALL

    def contains(self, path: NodePath) -> bool:
        return path.key in self._paths

    def leaf_count(self, path: NodePath) -> int:
        return self._leaf_count.get(path.key, 0)

    def items_under(self, path: NodePath) -> list[ExternalItem]:
        self._require(path)
        return [self._items[p.key] for p in self._walk(path) if p.key in self._items]

    def selected_items(self) -> list[ExternalItem]:
        return [item for key, item in self._items.items() if self.state(self._paths[key]) == ALL]

    def selected_roots(self) -> list[NodePath]:
        """Fully-selected nodes whose parent is not fully selected, in hierarchy order."""
        roots: list[NodePath] = []

        def visit(path: NodePath):
            if self.leaf_count(path) == 0:
                return
            if self.state(path) == ALL:
                roots.append(path)
                return
            for child in self._children[path.key]:
                visit(child)

        for root in self._roots:
            visit(root)
        return roots

    # ------------------------------------------------------------------ #
    # Mutation                                                             #
    # ------------------------------------------------------------------ #

    def toggle(self, path: NodePath) -> bool:
        """Flip ``path`` and everything below it; returns the new selected value."""
        self._require(path)
        current = self.nodes.get(path.key)
        value = not (current.selected if current else False)

        for node_path in self._walk(path):
            if self.leaf_count(node_path) == 0:
                self.nodes.pop(node_path.key, None)
            else:
                self.nodes[node_path.key] = SelectionNode(node_path, value, False)

        self.recompute_upward(path)
        return value

    def recompute_upward(self, path: NodePath):
        for ancestor in path.ancestors():
            self._recompute(ancestor)

    def _recompute(self, path: NodePath):
        children = [c for c in self._children.get(path.key, []) if self.leaf_count(c) > 0]
        if not children:
            self.nodes.pop(path.key, None)
            return
        states = [self.state(c) for c in children]
        if all(s == ALL for s in states):
            self.nodes[path.key] = SelectionNode(path, True, False)
        elif any(s != NONE for s in states):
            self.nodes[path.key] = SelectionNode(path, False, True)
        else:
            self.nodes[path.key] = SelectionNode(path, False, False)

    # ------------------------------------------------------------------ #
    # Derivation from leaves                                               #
    # ------------------------------------------------------------------ #

    def derive_states(self, selected_leaves: Iterable[str] | None = None) -> dict[str, str]:
        """Compute every node's state purely from the selected leaf keys.

        Defaults to the leaves currently selected in this tree, so the result
        can be compared with the incrementally maintained map.
        """
        if selected_leaves is None:
            selected_leaves = [k for k in self._items if self.state(self._paths[k]) == ALL]
        leaves = set(selected_leaves)
        derived: dict[str, str] = {}

        def visit(path: NodePath) -> str:
            if path.item_id:
                result = ALL if path.key in leaves else NONE
            else:
                states = [visit(c) for c in self._children[path.key]]
                states = [
                    s for c, s in zip(self._children[path.key], states) if self.leaf_count(c) > 0
                ]
                if states and all(s == ALL for s in states):
                    result = ALL
                elif any(s != NONE for s in states):
                    result = PARTIAL
                else:
                    result = NONE
            derived[path.key] = result
            return result

        for root in self._roots:
            visit(root)
        return derived

    def is_consistent(self) -> bool:
        derived = self.derive_states()
        return all(self.state(self._paths[key]) == derived[key] for key in self._paths)

    @classmethod
    def from_sync_entries(
        cls, hierarchy: list[ProjectHierarchy], entries: Iterable[SyncEntry]
    ) -> "SelectionTree":
        """Build a tree whose selection reflects persisted sync entries."""
        tree = cls(hierarchy)
        entry_paths = [NodePath.from_entry(e) for e in entries]
        leaves = [
            key
            for key in tree._items
            if any(entry.covers(tree._paths[key]) for entry in entry_paths)
        ]
        for key, state in tree.derive_states(leaves).items():
            path = tree._paths[key]
            if state == ALL:
                tree.nodes[key] = SelectionNode(path, True, False)
            elif state == PARTIAL:
                tree.nodes[key] = SelectionNode(path, False, True)
        return tree
