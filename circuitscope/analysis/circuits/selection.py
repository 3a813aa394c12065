"""
Selection state for a circuit graph.

Nodes and edges have independent id spaces, so the selection keeps one set for
each. Selection is transient and never serialized.
"""

from enum import Enum
from typing import Iterable, Set, Union


class SelectionKind(Enum):
    """What a selected id refers to."""
    NODE = "node"
    EDGE = "edge"

    @classmethod
    def from_string(cls, s: str) -> "SelectionKind":
        """Convert string to SelectionKind, case-insensitive."""
        normalized = s.lower().strip()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown selection kind: {s}. Valid kinds: {[m.value for m in cls]}")


class Selection:
    """
    Selected node ids and selected edge ids.

    Exclusive selection clears both sets before selecting; toggling only
    touches the one id.
    """

    def __init__(self):
        self.nodes: Set[int] = set()
        self.edges: Set[int] = set()

    def _bucket(self, kind: Union[str, SelectionKind]) -> Set[int]:
        if isinstance(kind, str):
            kind = SelectionKind.from_string(kind)
        return self.nodes if kind is SelectionKind.NODE else self.edges

    def select_exclusive(self, item_id: int, kind: Union[str, SelectionKind] = SelectionKind.NODE) -> None:
        self.clear()
        self._bucket(kind).add(item_id)

    def toggle(self, item_id: int, kind: Union[str, SelectionKind] = SelectionKind.NODE) -> bool:
        """Flip ``item_id``; returns whether it is selected afterwards."""
        bucket = self._bucket(kind)
        if item_id in bucket:
            bucket.discard(item_id)
            return False
        bucket.add(item_id)
        return True

    def is_selected(self, item_id: int, kind: Union[str, SelectionKind] = SelectionKind.NODE) -> bool:
        return item_id in self._bucket(kind)

    def discard_nodes(self, ids: Iterable[int]) -> None:
        self.nodes.difference_update(ids)

    def discard_edges(self, ids: Iterable[int]) -> None:
        self.edges.difference_update(ids)

    def clear(self) -> None:
        self.nodes.clear()
        self.edges.clear()

    def __len__(self) -> int:
        return len(self.nodes) + len(self.edges)

    def __bool__(self) -> bool:
        return bool(self.nodes or self.edges)

    def __repr__(self) -> str:
        return f"Selection(nodes={sorted(self.nodes)}, edges={sorted(self.edges)})"
