"""
circuitscope / analysis / influence
===================================

Feature-to-feature influence ("virtual weights").

Raw samples are directed and position-specific. ``WeightAggregator.build``
collapses them into one undirected AggregatedEdge per (layer, latent) pair,
which then answers incoming/outgoing queries. ``top_by_magnitude`` thresholds
the raw samples independently of the aggregation.

Example:
    >>> from circuitscope.analysis.influence import WeightAggregator, parse_samples
    >>>
    >>> samples = parse_samples(rows)
    >>> edges = WeightAggregator.build(samples)
    >>> edges.incoming_to(layer=3, latent=120)[:5]
"""

from .weights import (
    AggregatedEdge,
    AggregatedEdges,
    FeatureKey,
    IncomingInfluence,
    InfluenceSample,
    OutgoingInfluence,
    PairKey,
    WeightAggregator,
    aggregate,
    canonical_pair_key,
    default_threshold,
    parse_samples,
    top_by_magnitude,
)

__all__ = [
    "AggregatedEdge",
    "AggregatedEdges",
    "FeatureKey",
    "IncomingInfluence",
    "InfluenceSample",
    "OutgoingInfluence",
    "PairKey",
    "WeightAggregator",
    "aggregate",
    "canonical_pair_key",
    "default_threshold",
    "parse_samples",
    "top_by_magnitude",
]
