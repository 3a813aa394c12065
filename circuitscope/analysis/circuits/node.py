"""
Node and Edge abstractions for circuit graphs.

Defines the structural components of a user-built circuit:
- FeatureRef: A (layer, latent) feature observed at a sequence position
- CircuitNode: A node on the canvas, either one feature or a composite of several
- CircuitEdge: A connection between two nodes, user-drawn or derived from
  aggregated influence weights

Serialized field names are camelCase to match the snapshot format.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ...errors import MalformedSnapshotError


def _pick(data: Dict[str, Any], *keys, default=None):
    """First present key among ``keys``; older snapshots use different names."""
    for key in keys:
        if key in data:
            return data[key]
    return default


def _require_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedSnapshotError(f"{what} must be a mapping, got {data!r}")
    return data


def _require_int(value: Any, what: str) -> int:
    # bool is an int subclass but never a valid id
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedSnapshotError(f"{what} must be an integer, got {value!r}")
    return value


@dataclass
class FeatureRef:
    """
    A feature instance grouped under a composite node.

    Attributes:
        layer: Layer index
        latent: Latent index within the layer
        position: Sequence position it was picked from, if any
        residue: Residue at that position, if any
        value: Activation value at that position, if any
    """
    layer: int
    latent: int
    position: Optional[int] = None
    residue: Optional[str] = None
    value: Optional[float] = None

    @property
    def key(self) -> Tuple[int, int]:
        return (self.layer, self.latent)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layer": self.layer,
            "latent": self.latent,
            "position": self.position,
            "residue": self.residue,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureRef":
        _require_mapping(data, "Feature reference")
        latent = _pick(data, "latent", "latentIdx")
        if "layer" not in data or latent is None:
            raise MalformedSnapshotError(f"Feature reference needs 'layer' and 'latent': {data!r}")
        return cls(
            layer=data["layer"],
            latent=latent,
            position=_pick(data, "position", "pos"),
            residue=_pick(data, "residue", "aa"),
            value=data.get("value"),
        )


@dataclass
class CircuitNode:
    """
    Represents a single node on the circuit canvas.

    A simple node stands for exactly one (layer, latent) feature. A composite
    node groups one or more FeatureRefs and has no (layer, latent) of its own.

    Attributes:
        id: Unique integer id, never reused within a graph
        layer: Layer index (None for composite nodes)
        latent: Latent index (None for composite nodes)
        position: Sequence position the feature was picked at
        residue: Residue at ``position``
        value: Activation value at ``position``
        is_composite: Whether this node groups several features
        children: Grouped features (composite nodes only)
        display_name: User annotation, empty if unnamed
        x: Canvas x coordinate
        y: Canvas y coordinate
    """
    id: int
    layer: Optional[int] = None
    latent: Optional[int] = None
    position: Optional[int] = None
    residue: Optional[str] = None
    value: Optional[float] = None
    is_composite: bool = False
    children: List[FeatureRef] = field(default_factory=list)
    display_name: str = ""
    x: float = 0.0
    y: float = 0.0

    @property
    def feature_key(self) -> Optional[Tuple[int, int]]:
        """(layer, latent) for simple nodes, None for composites."""
        if self.is_composite:
            return None
        return (self.layer, self.latent)

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CircuitNode):
            return self.id == other.id
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize node to dictionary."""
        return {
            "id": self.id,
            "position": self.position,
            "layer": self.layer,
            "latent": self.latent,
            "residue": self.residue,
            "value": self.value,
            "isComposite": self.is_composite,
            "children": [c.to_dict() for c in self.children],
            "displayName": self.display_name,
            "x": self.x,
            "y": self.y,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitNode":
        """Deserialize node from dictionary."""
        _require_mapping(data, "Node entry")
        if "id" not in data:
            raise MalformedSnapshotError(f"Node is missing 'id': {data!r}")
        node_id = _require_int(data["id"], "Node id")

        is_composite = bool(_pick(data, "isComposite", "isSuper", default=False))
        layer = data.get("layer")
        latent = _pick(data, "latent", "latentIdx")
        if not is_composite and (layer is None or latent is None):
            raise MalformedSnapshotError(f"Node {data['id']} needs 'layer' and 'latent'")

        children = data.get("children") or []
        if not isinstance(children, list):
            raise MalformedSnapshotError(f"Node {node_id} children must be a list, got {children!r}")

        return cls(
            id=node_id,
            layer=layer,
            latent=latent,
            position=_pick(data, "position", "pos"),
            residue=_pick(data, "residue", "aa"),
            value=data.get("value"),
            is_composite=is_composite,
            children=[FeatureRef.from_dict(c) for c in children],
            display_name=_pick(data, "displayName", "name", default="") or "",
            x=data.get("x", 0.0),
            y=data.get("y", 0.0),
        )

    def __repr__(self) -> str:
        if self.is_composite:
            return f"CircuitNode(id={self.id}, composite, children={len(self.children)})"
        return f"CircuitNode(id={self.id}, layer={self.layer}, latent={self.latent})"


@dataclass
class CircuitEdge:
    """
    Represents a connection between two circuit nodes.

    Existence is checked on the unordered endpoint pair: at most one edge
    joins any two nodes regardless of direction.

    Attributes:
        id: Unique integer id, never reused within a graph
        from_node_id: Id of the node the edge was drawn from
        to_node_id: Id of the node the edge was drawn to
        weight: Averaged influence weight, or None for unweighted edges
        is_derived: True when created from aggregated influence weights
    """
    id: int
    from_node_id: int
    to_node_id: int
    weight: Optional[float] = None
    is_derived: bool = False

    @property
    def endpoints(self) -> FrozenSet[int]:
        return frozenset((self.from_node_id, self.to_node_id))

    def touches(self, node_id: int) -> bool:
        return node_id == self.from_node_id or node_id == self.to_node_id

    def connects(self, a: int, b: int) -> bool:
        """True if this edge joins ``a`` and ``b`` in either direction."""
        return (self.from_node_id == a and self.to_node_id == b) or (
            self.from_node_id == b and self.to_node_id == a
        )

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CircuitEdge):
            return self.id == other.id
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize edge to dictionary."""
        return {
            "id": self.id,
            "fromNodeId": self.from_node_id,
            "toNodeId": self.to_node_id,
            "weight": self.weight,
            "isDerived": self.is_derived,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitEdge":
        """Deserialize edge from dictionary."""
        _require_mapping(data, "Edge entry")
        source = _pick(data, "fromNodeId", "from")
        target = _pick(data, "toNodeId", "to")
        if "id" not in data or source is None or target is None:
            raise MalformedSnapshotError(f"Edge needs 'id', 'fromNodeId' and 'toNodeId': {data!r}")
        edge_id = _require_int(data["id"], "Edge id")
        source = _require_int(source, f"Edge {edge_id} source")
        target = _require_int(target, f"Edge {edge_id} target")
        if source == target:
            raise MalformedSnapshotError(f"Edge {edge_id} connects node {source} to itself")
        return cls(
            id=edge_id,
            from_node_id=source,
            to_node_id=target,
            weight=data.get("weight"),
            is_derived=bool(_pick(data, "isDerived", "isVirtual", default=False)),
        )

    def __repr__(self) -> str:
        weight_str = f", weight={self.weight:.3f}" if self.weight is not None else ""
        kind = "derived" if self.is_derived else "user"
        return f"CircuitEdge({self.id}: {self.from_node_id} -- {self.to_node_id}, {kind}{weight_str})"
