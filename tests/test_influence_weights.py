"""
Unit tests for influence weight aggregation.

Tests cover:
- Canonical pair keys
- Sample parsing
- Aggregation (symmetry, merge, order independence)
- Directional queries
- Magnitude thresholding and default threshold
"""

import random

import pytest

from circuitscope.analysis.influence import (
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
from circuitscope.errors import MalformedInputError


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def rows():
    """Influence rows around feature (1, 5)."""
    return [
        [0, 0, 2, 1, 1, 5, 0.8],     # (0,2) -> (1,5)
        [1, 1, 5, 0, 0, 2, 0.4],     # (1,5) -> (0,2)
        [0, 0, 3, 1, 1, 5, -0.9],    # (0,3) -> (1,5)
        [1, 1, 5, 2, 2, 7, 0.1],     # (1,5) -> (2,7)
        [1, 1, 5, 3, 2, 8, -0.3],    # (1,5) -> (2,8)
        [1, 1, 5, 4, 1, 6, 0.5],     # (1,5) -> (1,6), same layer
    ]


@pytest.fixture
def samples(rows):
    return parse_samples(rows)


@pytest.fixture
def edges(samples):
    return WeightAggregator.build(samples)


# =============================================================================
# Key Tests
# =============================================================================

class TestPairKey:

    def test_canonical_key_is_symmetric(self):
        """Test that argument order does not matter."""
        assert canonical_pair_key((1, 5), (0, 2)) == canonical_pair_key((0, 2), (1, 5))
        assert canonical_pair_key((1, 5), (0, 2)) == PairKey(FeatureKey(0, 2), FeatureKey(1, 5))

    def test_order_is_numeric(self):
        """Test that features order by layer then latent as numbers."""
        key = canonical_pair_key((10, 1), (9, 200))
        assert key.low == FeatureKey(9, 200)
        key = canonical_pair_key((3, 10), (3, 9))
        assert key.low == FeatureKey(3, 9)

    def test_other(self):
        """Test picking the opposite endpoint."""
        key = canonical_pair_key((0, 2), (1, 5))
        assert key.other(FeatureKey(0, 2)) == FeatureKey(1, 5)
        assert key.other(FeatureKey(1, 5)) == FeatureKey(0, 2)

    def test_str(self):
        """Test the display form of a pair key."""
        assert str(canonical_pair_key((1, 5), (0, 2))) == "(0,2):(1,5)"


# =============================================================================
# Parsing Tests
# =============================================================================

class TestParsing:

    def test_parse_row(self):
        """Test parsing a single 7-field row."""
        sample = InfluenceSample.from_row([3, 0, 2, 4, 1, 5, "0.25"])
        assert sample.source == FeatureKey(0, 2)
        assert sample.target == FeatureKey(1, 5)
        assert sample.src_position == 3
        assert sample.weight == 0.25
        assert sample.to_row() == [3, 0, 2, 4, 1, 5, 0.25]

    def test_parse_wrong_length_raises(self):
        """Test that rows must have exactly 7 fields."""
        with pytest.raises(MalformedInputError, match="7 fields"):
            parse_samples([[0, 0, 2, 1, 1, 5]])

    def test_parse_none(self):
        """Test that missing data parses to nothing."""
        assert parse_samples(None) == []

    def test_reversed(self):
        """Test swapping source and target."""
        sample = InfluenceSample(3, 0, 2, 4, 1, 5, 0.25)
        flipped = sample.reversed()
        assert flipped.source == sample.target
        assert flipped.src_position == 4
        assert flipped.pair_key == sample.pair_key


# =============================================================================
# Aggregation Tests
# =============================================================================

class TestAggregation:

    def test_pair_in_both_directions(self, edges):
        """Test that opposite-direction samples fall into one bucket."""
        edge = edges.get((0, 2), (1, 5))
        assert edge.avg_weight == pytest.approx(0.6)
        assert edge.count == 2
        assert edge.sum_weight == pytest.approx(1.2)
        assert edges.get((1, 5), (0, 2)) is edge

    def test_every_sample_lands_in_one_bucket(self, samples, edges):
        """Test that bucket counts add up to the number of samples."""
        assert sum(e.count for e in edges.values()) == len(samples)
        assert len(edges) == 5

    def test_symmetry(self, samples):
        """Test that reversing every sample gives identical buckets."""
        forward = WeightAggregator.build(samples)
        backward = WeightAggregator.build([s.reversed() for s in samples])

        assert list(forward) == list(backward)
        for key in forward:
            assert backward[key].sum_weight == pytest.approx(forward[key].sum_weight)
            assert backward[key].count == forward[key].count

    def test_order_independent(self, samples, edges):
        """Test that shuffling the input does not change any bucket."""
        shuffled = list(samples)
        random.Random(7).shuffle(shuffled)
        other = aggregate(shuffled)

        assert set(other) == set(edges)
        for key in edges:
            assert other[key].avg_weight == pytest.approx(edges[key].avg_weight)

    def test_merge_matches_whole(self, samples, edges):
        """Test that aggregating two partitions and merging equals aggregating all."""
        merged = WeightAggregator.build(samples[:2]).merge(WeightAggregator.build(samples[2:]))

        assert set(merged) == set(edges)
        for key in edges:
            assert merged[key].sum_weight == pytest.approx(edges[key].sum_weight)
            assert merged[key].count == edges[key].count

    def test_build_accepts_raw_rows(self, rows, edges):
        """Test that raw rows aggregate like parsed samples."""
        assert set(WeightAggregator.build(rows)) == set(edges)

    def test_empty_and_none(self):
        """Test that no data gives an empty aggregation that answers queries."""
        for data in (None, []):
            empty = WeightAggregator.build(data)
            assert len(empty) == 0
            assert not empty
            assert empty.incoming_to(1, 5) == []
            assert empty.outgoing_from(1, 5) == []
            assert empty.get((0, 1), (1, 1)) is None

    def test_contains(self, edges):
        """Test membership by canonical key."""
        assert canonical_pair_key((0, 2), (1, 5)) in edges
        assert canonical_pair_key((0, 2), (2, 7)) not in edges


# =============================================================================
# Directional Query Tests
# =============================================================================

class TestDirectionalQueries:

    def test_incoming_sorted_by_magnitude(self, edges):
        """Test incoming edges come from lower layers, strongest first."""
        incoming = edges.incoming_to(1, 5)

        assert [(i.from_layer, i.from_latent) for i in incoming] == [(0, 3), (0, 2)]
        assert incoming[0] == IncomingInfluence(0, 3, pytest.approx(-0.9), 1)
        assert incoming[1].avg_weight == pytest.approx(0.6)
        assert incoming[1].count == 2

    def test_outgoing_sorted_by_magnitude(self, edges):
        """Test outgoing edges go to higher layers, strongest first."""
        outgoing = edges.outgoing_from(1, 5)

        assert [(o.to_layer, o.to_latent) for o in outgoing] == [(2, 8), (2, 7)]
        assert isinstance(outgoing[0], OutgoingInfluence)
        assert outgoing[0].avg_weight == pytest.approx(-0.3)

    def test_same_layer_excluded_from_directions(self, edges):
        """Test that same-layer edges appear in neither direction."""
        directional = {(i.from_layer, i.from_latent) for i in edges.incoming_to(1, 5)}
        directional |= {(o.to_layer, o.to_latent) for o in edges.outgoing_from(1, 5)}
        assert (1, 6) not in directional

        same = edges.same_layer(1, 5)
        assert len(same) == 1
        assert same[0].avg_weight == pytest.approx(0.5)

    def test_directional_completeness(self, edges):
        """Test that incoming + outgoing + same-layer covers every touching edge."""
        for feature in [(0, 2), (0, 3), (1, 5), (1, 6), (2, 7), (2, 8)]:
            total = (
                len(edges.incoming_to(*feature))
                + len(edges.outgoing_from(*feature))
                + len(edges.same_layer(*feature))
            )
            assert total == len(edges.edges_touching(*feature))

    def test_layer_zero_has_no_incoming(self, edges):
        """Test that nothing can reach layer 0 from below."""
        assert edges.incoming_to(0, 2) == []
        assert len(edges.outgoing_from(0, 2)) == 1

    def test_unknown_feature(self, edges):
        """Test that queries on an unknown feature return empty lists."""
        assert edges.incoming_to(5, 5) == []
        assert edges.edges_touching(5, 5) == []

    def test_ties_keep_aggregation_order(self):
        """Test stable ordering on equal magnitudes."""
        edges = WeightAggregator.build([
            [0, 0, 4, 0, 1, 1, 0.5],
            [0, 0, 3, 0, 1, 1, -0.5],
            [0, 0, 9, 0, 1, 1, 0.5],
        ])
        assert [i.from_latent for i in edges.incoming_to(1, 1)] == [4, 3, 9]


# =============================================================================
# Thresholding Tests
# =============================================================================

class TestTopByMagnitude:

    def test_thirty_percent_of_ten(self):
        """Test that 30% of 10 samples keeps the 3 strongest."""
        weights = [0.1, -0.9, 0.3, 0.05, 0.8, -0.2, 0.6, 0.0, -0.4, 0.7]
        samples = [InfluenceSample(i, 0, i, i, 1, i, w) for i, w in enumerate(weights)]

        top = top_by_magnitude(samples, 30)

        assert [s.weight for s in top] == [-0.9, 0.8, 0.7]

    def test_rounds_up(self):
        """Test that the kept count is ceil(n * percent / 100)."""
        samples = [InfluenceSample(i, 0, i, i, 1, i, float(i)) for i in range(7)]
        assert len(top_by_magnitude(samples, 10)) == 1
        assert len(top_by_magnitude(samples, 15)) == 2

    def test_hundred_keeps_order(self, samples):
        """Test that 100% returns every sample in input order."""
        assert top_by_magnitude(samples, 100) == samples

    def test_ties_keep_input_order(self):
        """Test stable ranking among equal magnitudes."""
        samples = [InfluenceSample(i, 0, i, i, 1, i, w) for i, w in enumerate([0.5, -0.5, 0.5, 0.1])]
        assert [s.src_position for s in top_by_magnitude(samples, 50)] == [0, 1]

    @pytest.mark.parametrize("percent", [0, -5, 100.5, 250])
    def test_out_of_range_percent_raises(self, samples, percent):
        """Test that percent must lie in (0, 100]."""
        with pytest.raises(MalformedInputError, match="percent"):
            top_by_magnitude(samples, percent)

    def test_empty(self):
        """Test that no samples gives no samples."""
        assert top_by_magnitude([], 50) == []
        assert top_by_magnitude(None, 50) == []

    def test_static_alias(self, samples):
        """Test the WeightAggregator entry point."""
        assert WeightAggregator.top_by_magnitude(samples, 50) == top_by_magnitude(samples, 50)

    def test_default_threshold(self):
        """Test the default cap on displayed samples."""
        assert default_threshold(500) == 100.0
        assert default_threshold(1000) == 100.0
        assert default_threshold(4000) == pytest.approx(25.0)
        assert default_threshold(400, max_edges=100) == pytest.approx(25.0)

    def test_repr(self, edges):
        """Test repr of the aggregation."""
        assert isinstance(edges, AggregatedEdges)
        assert "edges=5" in repr(edges)

    @pytest.mark.parametrize("total", [1003, 1007, 1013, 1029, 4999])
    def test_default_threshold_never_exceeds_cap(self, total):
        """Test that float rounding never lets an extra sample through the default cap."""
        samples = [InfluenceSample(i, 0, i, i, 1, i, float(i % 17)) for i in range(total)]
        assert len(top_by_magnitude(samples, default_threshold(total))) == 1000
