"""
Unit tests for peak alignment.

Tests cover:
- Peak finding
- Padding arithmetic and the shared center column
- Reference record placement
- Purity (inputs are not modified)
- Building the wild-type alignment for a feature
"""

import pytest

from circuitscope.analysis.alignment import (
    AlignmentRecord,
    align_on_peak,
    build_feature_alignment,
    find_peak_index,
)
from circuitscope.features import ActivationIndex, ReferenceSet


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def records():
    return [
        AlignmentRecord("AC", [0, 1], label="first"),
        AlignmentRecord("DEF", [2, 0, 0], label="second"),
    ]


@pytest.fixture
def index():
    """Activations of feature (2, 77) on the sequence MKTAY."""
    return ActivationIndex.from_rows([
        [2, 1, 0.4, 77],
        [2, 3, 1.8, 77],
        [2, 3, 0.9, 12],
        [1, 0, 0.5, 77],
    ])


@pytest.fixture
def references():
    return ReferenceSet.from_dict({
        "layers": {
            "2": {
                "77": [
                    {"Sequence": "GGAYW", "Activations": [0, 0, 0.2, 3.1, 0],
                     "Score": 3.1, "Entry": "P12345", "Entry Name": "REF1_HUMAN",
                     "Protein names": "Reference one"},
                    {"Sequence": "AY", "Activations": [0.1, 2.0],
                     "Score": 2.0, "Entry": "Q99999", "Entry Name": "REF2_YEAST"},
                ]
            }
        }
    })


# =============================================================================
# Peak Tests
# =============================================================================

class TestFindPeak:

    def test_argmax(self):
        """Test that the largest value wins."""
        assert find_peak_index([0.1, 0.5, 0.3]) == 1

    def test_first_index_on_ties(self):
        """Test that ties resolve to the first index."""
        assert find_peak_index([0.2, 0.9, 0.9]) == 1

    def test_all_zero_and_empty(self):
        """Test that flat or empty profiles peak at 0."""
        assert find_peak_index([0, 0, 0]) == 0
        assert find_peak_index([]) == 0


# =============================================================================
# Alignment Tests
# =============================================================================

class TestAlignOnPeak:

    def test_two_records(self, records):
        """Test the pads for a peak at 1 and a peak at 0."""
        alignment = align_on_peak(records)

        assert alignment.center == 1
        assert alignment.total_length == 4
        first, second = alignment.records
        assert (first.left_pad, first.right_pad) == (0, 2)
        assert (second.left_pad, second.right_pad) == (1, 0)
        assert alignment.rows() == ["AC--", "-DEF"]

    def test_peaks_share_center_column(self, records):
        """Test that every peak lands in the center column after padding."""
        alignment = align_on_peak(records)
        for aligned in alignment:
            assert aligned.left_pad + aligned.peak_index == alignment.center
            assert len(aligned.padded_sequence()) == alignment.total_length

    def test_padded_profile(self, records):
        """Test that pads are filled with the fill value."""
        second = align_on_peak(records).records[1]
        assert second.padded_profile() == [0.0, 2.0, 0.0, 0.0]
        assert second.padded_sequence(gap=".") == ".DEF"

    def test_idempotent_on_padded_output(self, records):
        """Test that re-aligning the padded rows changes nothing."""
        first = align_on_peak(records)
        again = align_on_peak([
            AlignmentRecord(a.padded_sequence(), a.padded_profile(), label=a.record.label)
            for a in first
        ])

        assert again.center == first.center
        assert again.total_length == first.total_length
        assert all(a.left_pad == 0 and a.right_pad == 0 for a in again)

    def test_reference_goes_first(self, records):
        """Test that the reference record is placed first and flagged."""
        reference = AlignmentRecord("MKV", [0, 0, 5], label="wild type")
        alignment = align_on_peak(records, reference=reference)

        assert alignment.records[0].record is reference
        assert alignment.records[0].is_reference
        assert not any(a.is_reference for a in alignment.records[1:])
        assert alignment.center == 2
        assert alignment.rows() == ["MKV--", "-AC--", "--DEF"]

    def test_reference_listed_twice(self, records):
        """Test that passing the reference among the records does not duplicate it."""
        reference = records[1]
        alignment = align_on_peak(records, reference=reference)
        assert len(alignment) == 2
        assert alignment.records[0].record is reference

    def test_does_not_modify_inputs(self, records):
        """Test that alignment is pure."""
        reference = AlignmentRecord("MKV", [0, 0, 5])
        align_on_peak(records, reference=reference)

        assert reference.is_reference is False
        assert records[0].sequence == "AC"
        assert records[0].profile == [0, 1]

    def test_empty(self):
        """Test that aligning nothing gives an empty frame."""
        alignment = align_on_peak([])
        assert len(alignment) == 0
        assert alignment.total_length == 0

    def test_length_mismatch_warns(self):
        """Test that a profile shorter than its sequence only warns."""
        with pytest.warns(RuntimeWarning, match="does not match"):
            record = AlignmentRecord("ACDE", [0.0, 3.0], label="short")
        alignment = align_on_peak([record])
        assert alignment.records[0].peak_index == 1


# =============================================================================
# Feature Alignment Tests
# =============================================================================

class TestBuildFeatureAlignment:

    def test_wild_type_and_references(self, index, references):
        """Test aligning the subject sequence with a feature's top references."""
        alignment = build_feature_alignment(index, references, "MKTAY", layer=2, latent=77)

        labels = [a.record.label for a in alignment]
        assert labels == ["Wild Type", "REF1_HUMAN", "REF2_YEAST"]
        assert alignment.records[0].is_reference
        assert alignment.records[0].profile == [0.0, 0.4, 0.0, 1.8, 0.0]
        assert alignment.center == 3
        assert alignment.rows() == ["MKTAY", "GGAYW", "--AY-"]

    def test_reference_metadata(self, index, references):
        """Test that rank and entry details are carried through."""
        alignment = build_feature_alignment(index, references, "MKTAY", layer=2, latent=77)
        meta = alignment.records[2].record.metadata
        assert meta["rank"] == 2
        assert meta["entry"] == "Q99999"
        assert meta["protein_names"] == "Unknown protein"
        assert meta["score"] == 2.0

    def test_without_references(self, index):
        """Test that a feature with no references aligns only the wild type."""
        alignment = build_feature_alignment(index, ReferenceSet(), "MKTAY", layer=1, latent=77)
        assert len(alignment) == 1
        assert alignment.center == 0
        assert alignment.rows() == ["MKTAY"]

    def test_references_none(self, index):
        """Test that missing reference data is tolerated."""
        assert len(build_feature_alignment(index, None, "MKTAY", layer=2, latent=12)) == 1

    def test_gap_character(self, index, references):
        """Test that the chosen gap character is used when rendering rows."""
        alignment = build_feature_alignment(index, references, "MKTAY", layer=2, latent=77, gap=".")
        assert alignment.rows()[2] == "..AY."
        assert alignment.rows(gap="*")[2] == "**AY*"
