"""
CircuitGraph: the user-built circuit of latent features.

Nodes are features (or composites of features) the researcher placed on the
canvas; edges are either drawn by the user or derived automatically from the
aggregated influence weights. Derived edges are a view over
(current nodes x aggregated weights): they are regenerated on restore and never
written into snapshots.
"""

import json
import logging
import warnings
from collections import defaultdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ...config import ViewerConfig
from ...errors import MalformedInputError, MalformedSnapshotError, NotFoundError
from ..influence.weights import AggregatedEdges
from .node import CircuitEdge, CircuitNode, FeatureRef
from .selection import Selection, SelectionKind

_logger = logging.getLogger(__name__)


def _counter(snapshot: Dict[str, Any], key: str) -> int:
    value = snapshot.get(key) or 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedSnapshotError(f"Snapshot '{key}' must be an integer, got {value!r}")
    return value


class GraphState(Enum):
    """Coarse lifecycle state of a CircuitGraph."""
    EMPTY = "empty"
    POPULATED = "populated"


class CircuitGraph:
    """
    Mutable store of circuit nodes, edges and the current selection.

    Invariants kept by every mutating method:
    - node and edge ids come from monotonic counters and are never reused
    - at most one simple node per (layer, latent), checked on insertion
    - at most one edge per unordered pair of nodes
    - no edge references a node that is not in the graph

    Attributes:
        aggregated: Aggregated influence weights used for auto-linking
        config: Placement and snapshot settings
        name: Optional human-readable name for this circuit
        selection: Currently selected node and edge ids

    Example:
        >>> graph = CircuitGraph(aggregated=WeightAggregator.build(samples))
        >>> a = graph.add_node(latent=2, layer=0, position=14, residue="K", value=1.3)
        >>> b = graph.add_node(latent=5, layer=1, position=15, residue="D", value=0.8)
        >>> graph.edge_between(a.id, b.id)  # derived from the aggregated weights
        >>> graph.save("circuit.json")
    """

    def __init__(
        self,
        aggregated: Optional[AggregatedEdges] = None,
        config: Optional[ViewerConfig] = None,
        name: Optional[str] = None,
    ):
        """
        Initialize an empty circuit graph.

        Args:
            aggregated: Aggregated influence weights for auto-linking. Without
                them no derived edges are created.
            config: Placement settings (defaults to ViewerConfig())
            name: Optional circuit name
        """
        self.aggregated = aggregated if aggregated is not None else AggregatedEdges()
        self.config = config or ViewerConfig()
        self.name = name
        self.selection = Selection()

        # Insertion-ordered storage
        self._nodes: Dict[int, CircuitNode] = {}
        self._edges: Dict[int, CircuitEdge] = {}

        self._node_id_counter = 0
        self._edge_id_counter = 0

    # =========================================================================
    # Node Operations
    # =========================================================================

    def add_node(
        self,
        latent: int,
        layer: int,
        position: Optional[int] = None,
        residue: Optional[str] = None,
        value: Optional[float] = None,
    ) -> CircuitNode:
        """
        Place a feature on the canvas.

        If a simple node for (layer, latent) already exists it is returned
        unchanged and nothing is added; compare ``len(graph)`` or the returned
        id to tell the cases apart. Otherwise the new node is placed on the
        next grid slot and auto-linked to the existing simple nodes.

        Args:
            latent: Latent index
            layer: Layer index
            position: Sequence position the feature was picked at
            residue: Residue at ``position``
            value: Activation value at ``position``

        Returns:
            The new or the already existing CircuitNode
        """
        existing = self.find_node(layer, latent)
        if existing is not None:
            return existing

        x, y = self.config.grid_position(len(self._nodes))
        node = CircuitNode(
            id=self._next_node_id(),
            layer=layer,
            latent=latent,
            position=position,
            residue=residue,
            value=value,
            x=x,
            y=y,
        )
        self._nodes[node.id] = node
        self.auto_link(node)
        return node

    def add_composite_node(self, children: Iterable[Union[FeatureRef, Dict[str, Any], Tuple[int, int]]]) -> CircuitNode:
        """
        Group several features under one new node.

        Composite nodes are never de-duplicated and never auto-linked.

        Args:
            children: FeatureRefs, feature dicts, or (layer, latent) tuples

        Returns:
            The created CircuitNode

        Raises:
            MalformedInputError: If ``children`` is empty
        """
        refs = []
        for child in children:
            if isinstance(child, FeatureRef):
                refs.append(child)
            elif isinstance(child, dict):
                refs.append(FeatureRef.from_dict(child))
            else:
                layer, latent = child
                refs.append(FeatureRef(layer=layer, latent=latent))
        if not refs:
            raise MalformedInputError("A composite node needs at least one child feature")

        x, y = self.config.grid_position(len(self._nodes))
        node = CircuitNode(
            id=self._next_node_id(),
            is_composite=True,
            children=refs,
            x=x,
            y=y,
        )
        self._nodes[node.id] = node
        return node

    def get_node(self, node_id: int) -> Optional[CircuitNode]:
        """Get a node by ID, or None if not found."""
        return self._nodes.get(node_id)

    def has_node(self, node_id: int) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self._nodes

    def find_node(self, layer: int, latent: int) -> Optional[CircuitNode]:
        """The simple node for (layer, latent), or None."""
        for node in self._nodes.values():
            if not node.is_composite and node.layer == layer and node.latent == latent:
                return node
        return None

    @property
    def nodes(self) -> List[CircuitNode]:
        """Return all nodes in insertion order."""
        return list(self._nodes.values())

    @property
    def node_ids(self) -> List[int]:
        return list(self._nodes.keys())

    @property
    def simple_nodes(self) -> List[CircuitNode]:
        return [n for n in self._nodes.values() if not n.is_composite]

    @property
    def composite_nodes(self) -> List[CircuitNode]:
        return [n for n in self._nodes.values() if n.is_composite]

    def nodes_by_layer(self, layer: int) -> List[CircuitNode]:
        """Get all simple nodes at a specific layer."""
        return [n for n in self.simple_nodes if n.layer == layer]

    def move_node(self, node_id: int, x: float, y: float) -> bool:
        """
        Set a node's canvas coordinates.

        Returns:
            True if the node was moved, False if it doesn't exist
        """
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.x = x
        node.y = y
        return True

    def rename_node(self, node_id: int, display_name: str) -> bool:
        """Set a node's display name. Returns False if the node doesn't exist."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.display_name = (display_name or "").strip()
        return True

    def remove_nodes(self, node_ids: Iterable[int]) -> int:
        """
        Remove nodes and every edge touching them.

        The new node and edge maps are built aside and swapped in together,
        so no edge is ever left pointing at a removed node.

        Args:
            node_ids: Ids to remove; unknown ids are ignored

        Returns:
            Number of nodes removed
        """
        doomed = {nid for nid in node_ids if nid in self._nodes}
        if not doomed:
            return 0

        kept_edges = {}
        dropped_edges = []
        for eid, edge in self._edges.items():
            if edge.from_node_id in doomed or edge.to_node_id in doomed:
                dropped_edges.append(eid)
            else:
                kept_edges[eid] = edge
        kept_nodes = {nid: n for nid, n in self._nodes.items() if nid not in doomed}

        self._edges = kept_edges
        self._nodes = kept_nodes
        self.selection.discard_nodes(doomed)
        self.selection.discard_edges(dropped_edges)
        return len(doomed)

    def remove_node(self, node_id: int) -> bool:
        """
        Remove a node and all its connected edges.

        Returns:
            True if the node was removed, False if it didn't exist
        """
        return self.remove_nodes([node_id]) == 1

    # =========================================================================
    # Edge Operations
    # =========================================================================

    def add_edge(self, from_node_id: int, to_node_id: int, weight: Optional[float] = None) -> CircuitEdge:
        """
        Draw a user edge between two nodes.

        If the two nodes are already connected (in either direction, derived or
        not) the existing edge is returned instead.

        Args:
            from_node_id: ID of the node the edge starts at
            to_node_id: ID of the node the edge ends at
            weight: Optional edge weight

        Returns:
            The created or existing CircuitEdge

        Raises:
            NotFoundError: If either node doesn't exist
            MalformedInputError: If both ids are the same node
        """
        if from_node_id not in self._nodes:
            raise NotFoundError(f"Source node '{from_node_id}' does not exist")
        if to_node_id not in self._nodes:
            raise NotFoundError(f"Target node '{to_node_id}' does not exist")
        if from_node_id == to_node_id:
            raise MalformedInputError(f"Cannot connect node '{from_node_id}' to itself")

        existing = self.edge_between(from_node_id, to_node_id)
        if existing is not None:
            return existing
        return self._create_edge(from_node_id, to_node_id, weight, is_derived=False)

    def _create_edge(self, a: int, b: int, weight: Optional[float], is_derived: bool) -> CircuitEdge:
        """Internal edge creation (no existence check)."""
        edge = CircuitEdge(
            id=self._next_edge_id(),
            from_node_id=a,
            to_node_id=b,
            weight=weight,
            is_derived=is_derived,
        )
        self._edges[edge.id] = edge
        return edge

    def get_edge(self, edge_id: int) -> Optional[CircuitEdge]:
        """Get an edge by ID, or None if not found."""
        return self._edges.get(edge_id)

    def has_edge(self, edge_id: int) -> bool:
        return edge_id in self._edges

    def edge_between(self, a: int, b: int) -> Optional[CircuitEdge]:
        """The edge joining ``a`` and ``b`` in either direction, or None."""
        for edge in self._edges.values():
            if edge.connects(a, b):
                return edge
        return None

    def has_edge_between(self, a: int, b: int) -> bool:
        return self.edge_between(a, b) is not None

    @property
    def edges(self) -> List[CircuitEdge]:
        """Return all edges in creation order."""
        return list(self._edges.values())

    @property
    def derived_edges(self) -> List[CircuitEdge]:
        return [e for e in self._edges.values() if e.is_derived]

    @property
    def user_edges(self) -> List[CircuitEdge]:
        return [e for e in self._edges.values() if not e.is_derived]

    def edges_of(self, node_id: int) -> List[CircuitEdge]:
        """All edges touching a node. Empty for unknown ids."""
        return [e for e in self._edges.values() if e.touches(node_id)]

    def neighbors(self, node_id: int) -> List[CircuitNode]:
        """Nodes connected to ``node_id`` by any edge."""
        ids = []
        for edge in self.edges_of(node_id):
            other = edge.to_node_id if edge.from_node_id == node_id else edge.from_node_id
            ids.append(other)
        return [self._nodes[i] for i in ids]

    def degree(self, node_id: int) -> int:
        return len(self.edges_of(node_id))

    def remove_edges(self, edge_ids: Iterable[int]) -> int:
        """
        Remove exactly the named edges. Nodes are not affected.

        Returns:
            Number of edges removed
        """
        doomed = {eid for eid in edge_ids if eid in self._edges}
        if not doomed:
            return 0
        self._edges = {eid: e for eid, e in self._edges.items() if eid not in doomed}
        self.selection.discard_edges(doomed)
        return len(doomed)

    def remove_edge(self, edge_id: int) -> bool:
        return self.remove_edges([edge_id]) == 1

    # =========================================================================
    # Auto-linking
    # =========================================================================

    def auto_link(self, node: CircuitNode) -> List[CircuitEdge]:
        """
        Create derived edges between ``node`` and every other simple node that
        shares an aggregated influence edge with it.

        Pairs that are already connected (by any edge, in either direction)
        are skipped.

        Returns:
            The derived edges created
        """
        if node.is_composite or not self.aggregated:
            return []

        created = []
        for other in self.simple_nodes:
            if other.id == node.id:
                continue
            aggregated = self.aggregated.get(node.feature_key, other.feature_key)
            if aggregated is None or self.has_edge_between(node.id, other.id):
                continue
            created.append(
                self._create_edge(node.id, other.id, aggregated.avg_weight, is_derived=True)
            )

        if created:
            _logger.debug("Auto-linked node %s with %d derived edges", node.id, len(created))
        return created

    def relink(self, aggregated: Optional[AggregatedEdges] = None) -> int:
        """
        Regenerate every derived edge, optionally against new aggregated weights.

        Args:
            aggregated: Replacement aggregated weights; keep the current ones if None

        Returns:
            Number of derived edges after regeneration
        """
        if aggregated is not None:
            self.aggregated = aggregated

        stale = [e.id for e in self._edges.values() if e.is_derived]
        self.remove_edges(stale)
        for node in self.simple_nodes:
            self.auto_link(node)
        return len(self.derived_edges)

    # =========================================================================
    # Selection
    # =========================================================================

    def _exists(self, item_id: int, kind: Union[str, SelectionKind]) -> bool:
        if isinstance(kind, str):
            kind = SelectionKind.from_string(kind)
        if kind is SelectionKind.NODE:
            return item_id in self._nodes
        return item_id in self._edges

    def select_exclusive(self, item_id: int, kind: Union[str, SelectionKind] = SelectionKind.NODE) -> bool:
        """
        Clear both node and edge selections, then select only ``item_id``.

        Returns:
            False (and leaves the selection alone) if the id doesn't exist
        """
        if not self._exists(item_id, kind):
            return False
        self.selection.select_exclusive(item_id, kind)
        return True

    def select_toggle(self, item_id: int, kind: Union[str, SelectionKind] = SelectionKind.NODE) -> bool:
        """
        Add ``item_id`` to the selection, or remove it if already selected.

        Returns:
            Whether the id is selected afterwards (False for unknown ids)
        """
        if not self._exists(item_id, kind):
            return False
        return self.selection.toggle(item_id, kind)

    def clear_selection(self) -> None:
        self.selection.clear()

    @property
    def selected_nodes(self) -> List[CircuitNode]:
        return [n for nid, n in self._nodes.items() if nid in self.selection.nodes]

    @property
    def selected_edges(self) -> List[CircuitEdge]:
        return [e for eid, e in self._edges.items() if eid in self.selection.edges]

    def delete_selected(self) -> Tuple[int, int]:
        """
        Delete the selected edges, then the selected nodes with their edges.

        Returns:
            (nodes removed, edges removed)
        """
        edges_before = len(self._edges)
        self.remove_edges(list(self.selection.edges))
        n_nodes = self.remove_nodes(list(self.selection.nodes))
        self.selection.clear()
        return n_nodes, edges_before - len(self._edges)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def state(self) -> GraphState:
        return GraphState.POPULATED if self._nodes else GraphState.EMPTY

    def clear(self) -> None:
        """Remove every node, edge and selection. Id counters keep counting."""
        self._nodes = {}
        self._edges = {}
        self.selection.clear()

    def _next_node_id(self) -> int:
        node_id = self._node_id_counter
        self._node_id_counter += 1
        return node_id

    def _next_edge_id(self) -> int:
        edge_id = self._edge_id_counter
        self._edge_id_counter += 1
        return edge_id

    @property
    def node_id_counter(self) -> int:
        return self._node_id_counter

    @property
    def edge_id_counter(self) -> int:
        return self._edge_id_counter

    # =========================================================================
    # Serialization
    # =========================================================================

    def serialize(self) -> Dict[str, Any]:
        """
        Snapshot the graph as a JSON-compatible dictionary.

        Only user-drawn edges are included; derived edges are regenerated
        from the aggregated weights on restore.
        """
        return {
            "version": self.config.snapshot_version,
            "timestamp": datetime.now().isoformat(),
            "nodeIdCounter": self._node_id_counter,
            "edgeIdCounter": self._edge_id_counter,
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges.values() if not edge.is_derived],
        }

    to_dict = serialize

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """
        Replace the graph's contents with a snapshot.

        The snapshot is fully parsed and checked before anything is touched,
        so a bad snapshot leaves the graph as it was. After nodes and user
        edges are restored, derived edges are regenerated for every simple
        node in insertion order.

        Args:
            snapshot: Dictionary produced by :meth:`serialize`. Snapshots
                using the older ``canvasNodes``/``isSuper``/``isVirtual``
                field names are accepted too.

        Raises:
            MalformedSnapshotError: If ``nodes`` or ``edges`` is missing, or
                the snapshot is internally inconsistent
        """
        if not isinstance(snapshot, dict):
            raise MalformedSnapshotError(f"Snapshot must be a mapping, got {type(snapshot).__name__}")

        nodes_data = snapshot.get("nodes", snapshot.get("canvasNodes"))
        edges_data = snapshot.get("edges")
        if nodes_data is None or edges_data is None:
            raise MalformedSnapshotError("Snapshot must contain 'nodes' and 'edges'")
        if not isinstance(nodes_data, list) or not isinstance(edges_data, list):
            raise MalformedSnapshotError("Snapshot 'nodes' and 'edges' must be lists")

        expected = self.config.snapshot_version
        version = snapshot.get("version", expected)
        if version != expected:
            warnings.warn(
                f"Snapshot version {version!r} differs from {expected}; restoring anyway",
                RuntimeWarning,
            )

        nodes: Dict[int, CircuitNode] = {}
        for item in nodes_data:
            node = CircuitNode.from_dict(item)
            if node.id in nodes:
                raise MalformedSnapshotError(f"Duplicate node id {node.id} in snapshot")
            nodes[node.id] = node

        edges: Dict[int, CircuitEdge] = {}
        pairs = set()
        n_dropped = 0
        for item in edges_data:
            edge = CircuitEdge.from_dict(item)
            if edge.is_derived:
                n_dropped += 1
                continue
            if edge.from_node_id not in nodes or edge.to_node_id not in nodes:
                raise MalformedSnapshotError(
                    f"Edge {edge.id} references a node that is not in the snapshot"
                )
            if edge.id in edges:
                raise MalformedSnapshotError(f"Duplicate edge id {edge.id} in snapshot")
            if edge.endpoints in pairs:
                raise MalformedSnapshotError(
                    f"Edge {edge.id} duplicates an existing connection between "
                    f"{edge.from_node_id} and {edge.to_node_id}"
                )
            pairs.add(edge.endpoints)
            edges[edge.id] = edge

        # counters never fall back onto ids that are already in use
        node_counter = max([_counter(snapshot, "nodeIdCounter")] + [nid + 1 for nid in nodes])
        edge_counter = max([_counter(snapshot, "edgeIdCounter")] + [eid + 1 for eid in edges])

        self.clear()
        self._nodes = nodes
        self._edges = edges
        self._node_id_counter = node_counter
        self._edge_id_counter = edge_counter

        for node in self.simple_nodes:
            self.auto_link(node)

        _logger.info(
            "Restored %d nodes, %d user edges, %d derived edges (%d stale derived edges dropped)",
            len(self._nodes), len(edges), len(self.derived_edges), n_dropped,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Dict[str, Any],
        aggregated: Optional[AggregatedEdges] = None,
        config: Optional[ViewerConfig] = None,
    ) -> "CircuitGraph":
        """Build a new graph from a snapshot."""
        graph = cls(aggregated=aggregated, config=config)
        graph.restore(snapshot)
        return graph

    def save(self, path: Union[str, Path], indent: int = 2) -> None:
        """
        Save the graph snapshot to a JSON or YAML file (chosen by extension).

        Args:
            path: File path to save to
            indent: JSON indentation level (set to None for compact output)
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.serialize()

        if path.suffix.lower() in (".yaml", ".yml"):
            import yaml

            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        elif path.suffix.lower() == ".json":
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=indent)
        else:
            raise ValueError(
                f"Unsupported file extension: {path.suffix}. "
                "Try using .json or .yaml instead"
            )

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        aggregated: Optional[AggregatedEdges] = None,
        config: Optional[ViewerConfig] = None,
    ) -> "CircuitGraph":
        """
        Load a graph snapshot from a JSON or YAML file.

        Args:
            path: File path to load from
            aggregated: Aggregated weights used to regenerate derived edges

        Returns:
            Restored CircuitGraph
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                import yaml

                try:
                    data = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise MalformedSnapshotError(f"Snapshot file {path} is not valid YAML: {e}")
            else:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as e:
                    raise MalformedSnapshotError(f"Snapshot file {path} is not valid JSON: {e}")

        return cls.from_snapshot(data, aggregated=aggregated, config=config)

    # =========================================================================
    # Python Magic Methods
    # =========================================================================

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self._nodes)

    def __contains__(self, node_id: int) -> bool:
        """Check if a node ID is in the graph."""
        return node_id in self._nodes

    def __iter__(self) -> Iterator[CircuitNode]:
        """Iterate over nodes in insertion order."""
        return iter(list(self._nodes.values()))

    def __repr__(self) -> str:
        name_str = f"name={self.name!r}, " if self.name else ""
        return f"CircuitGraph({name_str}nodes={len(self._nodes)}, edges={len(self._edges)})"

    # =========================================================================
    # Statistics
    # =========================================================================

    def summary(self) -> Dict[str, Any]:
        """
        Get a summary of the graph structure.

        Returns:
            Dictionary with graph statistics
        """
        layer_counts = defaultdict(int)
        for node in self.simple_nodes:
            layer_counts[node.layer] += 1

        layers = sorted(layer_counts)
        return {
            "name": self.name,
            "state": self.state.value,
            "num_nodes": len(self._nodes),
            "num_composite": len(self.composite_nodes),
            "num_edges": len(self._edges),
            "num_derived": len(self.derived_edges),
            "nodes_per_layer": dict(layer_counts),
            "layer_range": (layers[0], layers[-1]) if layers else None,
            "num_selected": len(self.selection),
        }
