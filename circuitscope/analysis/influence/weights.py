"""
Aggregation of position-specific influence samples into feature-level edges.

Influence ("virtual weight") samples are directed observations recorded between
two (layer, latent) features at specific sequence positions. Many samples
describe the same pair of features at different positions, in either
direction. This module collapses them into one undirected edge per feature
pair, averaging the weights, and answers directional queries against the
result.

Thresholding by magnitude works on the raw samples and is independent of the
aggregation.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence

import numpy as np

from ...errors import MalformedInputError

_logger = logging.getLogger(__name__)


class FeatureKey(NamedTuple):
    """Identity of a feature independent of position. Ordered by layer, then latent."""
    layer: int
    latent: int

    def __str__(self) -> str:
        return f"({self.layer},{self.latent})"


class PairKey(NamedTuple):
    """Unordered pair of features, stored smaller-first."""
    low: FeatureKey
    high: FeatureKey

    def other(self, feature: FeatureKey) -> FeatureKey:
        """Return the endpoint that is not ``feature``."""
        return self.high if feature == self.low else self.low

    def __str__(self) -> str:
        return f"{self.low}:{self.high}"


def canonical_pair_key(a: Sequence[int], b: Sequence[int]) -> PairKey:
    """
    Build the direction-independent key for two features.

    Args:
        a: First (layer, latent) pair
        b: Second (layer, latent) pair

    Returns:
        PairKey with the smaller feature first, so that
        ``canonical_pair_key(a, b) == canonical_pair_key(b, a)``.
    """
    a, b = FeatureKey(*a), FeatureKey(*b)
    return PairKey(a, b) if a <= b else PairKey(b, a)


class InfluenceSample(NamedTuple):
    """One directed, position-specific influence observation."""
    src_position: int
    src_layer: int
    src_latent: int
    tgt_position: int
    tgt_layer: int
    tgt_latent: int
    weight: float

    @property
    def source(self) -> FeatureKey:
        return FeatureKey(self.src_layer, self.src_latent)

    @property
    def target(self) -> FeatureKey:
        return FeatureKey(self.tgt_layer, self.tgt_latent)

    @property
    def pair_key(self) -> PairKey:
        return canonical_pair_key(self.source, self.target)

    def reversed(self) -> "InfluenceSample":
        """Same observation with source and target swapped."""
        return InfluenceSample(
            self.tgt_position, self.tgt_layer, self.tgt_latent,
            self.src_position, self.src_layer, self.src_latent,
            self.weight,
        )

    @classmethod
    def from_row(cls, row: Sequence) -> "InfluenceSample":
        """Parse a 7-field row as stored in the virtual weights file."""
        if len(row) != 7:
            raise MalformedInputError(
                "Influence row must have 7 fields [srcPosition, srcLayer, srcLatent, "
                f"tgtPosition, tgtLayer, tgtLatent, weight], got {list(row)!r}"
            )
        *ints, weight = row
        return cls(*(int(v) for v in ints), float(weight))

    def to_row(self) -> list:
        return list(self)


def parse_samples(rows: Optional[Iterable[Sequence]]) -> List[InfluenceSample]:
    """Parse raw rows into InfluenceSamples. ``None`` yields an empty list."""
    return [InfluenceSample.from_row(row) for row in rows or []]


@dataclass
class AggregatedEdge:
    """
    Average influence between two features over every sample that links them.

    Attributes:
        key: Canonical pair of the two features
        sum_weight: Sum of sample weights
        count: Number of samples
    """
    key: PairKey
    sum_weight: float = 0.0
    count: int = 0

    @property
    def avg_weight(self) -> float:
        return self.sum_weight / self.count if self.count else 0.0

    def add(self, weight: float) -> None:
        self.sum_weight += weight
        self.count += 1

    def __repr__(self) -> str:
        return f"AggregatedEdge({self.key}, avg_weight={self.avg_weight:.4f}, count={self.count})"


@dataclass(frozen=True)
class IncomingInfluence:
    """An aggregated edge seen from its higher-layer endpoint."""
    from_layer: int
    from_latent: int
    avg_weight: float
    count: int


@dataclass(frozen=True)
class OutgoingInfluence:
    """An aggregated edge seen from its lower-layer endpoint."""
    to_layer: int
    to_latent: int
    avg_weight: float
    count: int


class AggregatedEdges:
    """
    Read-only map of canonical pair key -> AggregatedEdge.

    Produced by :meth:`WeightAggregator.build`. Pass it explicitly to whatever
    needs it (e.g. a CircuitGraph); it is rebuilt, never patched, when new
    influence data is loaded.
    """

    def __init__(self, edges: Optional[Dict[PairKey, AggregatedEdge]] = None):
        self._edges: Dict[PairKey, AggregatedEdge] = dict(edges or {})
        # feature -> pair keys touching it, for directional queries
        self._by_feature: Dict[FeatureKey, List[PairKey]] = {}
        for key in self._edges:
            self._by_feature.setdefault(key.low, []).append(key)
            if key.high != key.low:
                self._by_feature.setdefault(key.high, []).append(key)

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, a: Sequence[int], b: Sequence[int]) -> Optional[AggregatedEdge]:
        """Edge between features ``a`` and ``b`` in either order, or None."""
        return self._edges.get(canonical_pair_key(a, b))

    def edges_touching(self, layer: int, latent: int) -> List[AggregatedEdge]:
        """Every aggregated edge with (layer, latent) as an endpoint."""
        keys = self._by_feature.get(FeatureKey(layer, latent), [])
        return [self._edges[k] for k in keys]

    def incoming_to(self, layer: int, latent: int) -> List[IncomingInfluence]:
        """
        Edges reaching (layer, latent) from a strictly lower layer.

        Returns:
            IncomingInfluence list sorted by ``|avg_weight|`` descending.
            Ties keep aggregation order. Empty for layer 0.
        """
        feature = FeatureKey(layer, latent)
        incoming = []
        for edge in self.edges_touching(layer, latent):
            other = edge.key.other(feature)
            if other.layer < layer:
                incoming.append(
                    IncomingInfluence(other.layer, other.latent, edge.avg_weight, edge.count)
                )
        incoming.sort(key=lambda e: abs(e.avg_weight), reverse=True)
        return incoming

    def outgoing_from(self, layer: int, latent: int) -> List[OutgoingInfluence]:
        """
        Edges leaving (layer, latent) toward a strictly higher layer.

        Returns:
            OutgoingInfluence list sorted by ``|avg_weight|`` descending.
        """
        feature = FeatureKey(layer, latent)
        outgoing = []
        for edge in self.edges_touching(layer, latent):
            other = edge.key.other(feature)
            if other.layer > layer:
                outgoing.append(
                    OutgoingInfluence(other.layer, other.latent, edge.avg_weight, edge.count)
                )
        outgoing.sort(key=lambda e: abs(e.avg_weight), reverse=True)
        return outgoing

    def same_layer(self, layer: int, latent: int) -> List[AggregatedEdge]:
        """Edges between (layer, latent) and a feature of the same layer (itself included)."""
        feature = FeatureKey(layer, latent)
        return [
            e for e in self.edges_touching(layer, latent)
            if e.key.other(feature).layer == layer
        ]

    # =========================================================================
    # Combination
    # =========================================================================

    def merge(self, other: "AggregatedEdges") -> "AggregatedEdges":
        """
        Combine two aggregations by summing weights and counts per key.

        Aggregating two partitions of a sample set and merging the results is
        equivalent to aggregating the whole set.
        """
        merged: Dict[PairKey, AggregatedEdge] = {}
        for source in (self, other):
            for key, edge in source._edges.items():
                bucket = merged.setdefault(key, AggregatedEdge(key))
                bucket.sum_weight += edge.sum_weight
                bucket.count += edge.count
        return AggregatedEdges(merged)

    # =========================================================================
    # Python Magic Methods
    # =========================================================================

    def __getitem__(self, key: PairKey) -> AggregatedEdge:
        return self._edges[key]

    def __contains__(self, key) -> bool:
        return key in self._edges

    def __iter__(self) -> Iterator[PairKey]:
        return iter(self._edges)

    def __len__(self) -> int:
        return len(self._edges)

    def values(self) -> List[AggregatedEdge]:
        return list(self._edges.values())

    def items(self):
        return self._edges.items()

    def __repr__(self) -> str:
        return f"AggregatedEdges(edges={len(self._edges)}, features={len(self._by_feature)})"


class WeightAggregator:
    """
    Builds :class:`AggregatedEdges` from raw influence samples.

    Example:
        >>> samples = parse_samples([[0, 0, 2, 1, 1, 5, 0.8], [1, 1, 5, 0, 0, 2, 0.4]])
        >>> edges = WeightAggregator.build(samples)
        >>> edge = edges.get((0, 2), (1, 5))
        >>> round(edge.avg_weight, 6), edge.count
        (0.6, 2)
    """

    @staticmethod
    def build(samples: Optional[Iterable[InfluenceSample]]) -> AggregatedEdges:
        """
        Aggregate samples by canonical feature pair.

        Args:
            samples: InfluenceSamples or raw 7-field rows. ``None`` or an empty
                iterable yields an empty result.

        Returns:
            AggregatedEdges with one bucket per distinct feature pair
        """
        buckets: Dict[PairKey, AggregatedEdge] = {}
        n_samples = 0
        for sample in samples or []:
            if not isinstance(sample, InfluenceSample):
                sample = InfluenceSample.from_row(sample)
            key = sample.pair_key
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = AggregatedEdge(key)
            bucket.add(sample.weight)
            n_samples += 1

        _logger.debug("Aggregated %d influence samples into %d edges", n_samples, len(buckets))
        return AggregatedEdges(buckets)

    @staticmethod
    def top_by_magnitude(samples: Sequence[InfluenceSample], percent: float) -> List[InfluenceSample]:
        """See :func:`top_by_magnitude`."""
        return top_by_magnitude(samples, percent)


def aggregate(samples: Optional[Iterable[InfluenceSample]]) -> AggregatedEdges:
    """Shorthand for :meth:`WeightAggregator.build`."""
    return WeightAggregator.build(samples)


def top_by_magnitude(samples: Optional[Sequence[InfluenceSample]], percent: float) -> List[InfluenceSample]:
    """
    Keep the strongest ``percent`` of raw samples by absolute weight.

    Args:
        samples: Raw influence samples
        percent: Share to keep, in (0, 100]

    Returns:
        The top ``ceil(len(samples) * percent / 100)`` samples ranked by
        ``|weight|`` descending; equal magnitudes keep their input order.
        With ``percent == 100`` every sample is returned in input order.

    Raises:
        MalformedInputError: If percent is outside (0, 100]
    """
    if not 0 < percent <= 100:
        raise MalformedInputError(f"percent must be in (0, 100], got {percent}")
    samples = list(samples or [])
    if percent == 100 or not samples:
        return samples

    # strip float noise such as 1000.0000000000001 before ceil
    n_keep = min(len(samples), math.ceil(round(len(samples) * percent / 100, 9)))
    magnitudes = np.abs(np.array([s[6] for s in samples], dtype=np.float64))
    order = np.argsort(-magnitudes, kind="stable")[:n_keep]
    return [samples[i] for i in order]


def default_threshold(total: int, max_edges: int = 1000) -> float:
    """
    Percent of samples to show so that at most ``max_edges`` are displayed.

    Returns 100 when ``total`` does not exceed the cap.
    """
    if total > max_edges:
        return max_edges / total * 100
    return 100.0
