"""
Peak alignment of activation profiles.

Aligns several variable-length sequences so that the position where each one's
activation profile peaks falls in the same column. Sequences are only shifted,
never gapped internally: each record gets a left and right padding.
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ...features.activations import ActivationIndex
from ...features.reference import ReferenceSet


def find_peak_index(profile: Sequence[float]) -> int:
    """
    Index of the largest value in ``profile``.

    The first index wins on ties, so an all-zero profile peaks at 0. An empty
    profile also returns 0.
    """
    values = np.asarray(profile, dtype=np.float64)
    if values.size == 0:
        return 0
    return int(np.argmax(values))


@dataclass
class AlignmentRecord:
    """
    A sequence and its per-position activation profile.

    Attributes:
        sequence: Residue string.
        profile: Activation per residue, same length as ``sequence``.
        label: Display label (entry name, "Wild Type", ...).
        is_reference: Whether this is the distinguished reference record.
        metadata: Arbitrary extra information carried through alignment.
    """
    sequence: str
    profile: List[float]
    label: str = ""
    is_reference: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.profile) != len(self.sequence):
            warnings.warn(
                f"Profile length {len(self.profile)} does not match sequence length "
                f"{len(self.sequence)} for record {self.label!r}",
                RuntimeWarning,
            )

    @property
    def peak_index(self) -> int:
        return find_peak_index(self.profile)


@dataclass
class AlignedRecord:
    """An AlignmentRecord placed in the shared alignment frame."""
    record: AlignmentRecord
    peak_index: int
    left_pad: int
    right_pad: int
    total_length: int
    is_reference: bool = False

    @property
    def sequence(self) -> str:
        return self.record.sequence

    @property
    def profile(self) -> List[float]:
        return self.record.profile

    def padded_sequence(self, gap: str = "-") -> str:
        """The sequence with its pads written out as ``gap`` characters."""
        return gap * self.left_pad + self.record.sequence + gap * self.right_pad

    def padded_profile(self, fill: float = 0.0) -> List[float]:
        """The profile with ``fill`` in the padded columns."""
        return (
            [fill] * self.left_pad
            + [float(v) for v in self.record.profile]
            + [fill] * self.right_pad
        )

    def __repr__(self) -> str:
        return (
            f"AlignedRecord({self.record.label!r}, peak={self.peak_index}, "
            f"left_pad={self.left_pad}, right_pad={self.right_pad})"
        )


@dataclass
class Alignment:
    """
    Result of a peak alignment.

    Attributes:
        records: Aligned records, the reference (if any) first.
        total_length: Width of the alignment frame.
        center: Column where every record's peak lines up.
        gap: Character used for padding when rendering rows.
    """
    records: List[AlignedRecord]
    total_length: int
    center: int
    gap: str = "-"

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def rows(self, gap: Optional[str] = None) -> List[str]:
        """Every record rendered as a padded string of length ``total_length``."""
        gap = self.gap if gap is None else gap
        return [r.padded_sequence(gap) for r in self.records]


def align_on_peak(
    records: Sequence[AlignmentRecord],
    reference: Optional[AlignmentRecord] = None,
    gap: str = "-",
) -> Alignment:
    """
    Align records on the position of their maximal activation.

    Args:
        records: Records to align.
        reference: Optional distinguished record. It is placed first in the
            result and flagged ``is_reference``.
        gap: Padding character used by :meth:`Alignment.rows`.

    Returns:
        Alignment whose ``center`` is the largest peak index over all records.
        Every record gets ``left_pad = center - peak`` and a right pad that
        brings it to ``total_length``.

    Example:
        >>> a = align_on_peak([AlignmentRecord("AC", [0, 1]), AlignmentRecord("DEF", [2, 0, 0])])
        >>> a.center, a.total_length
        (1, 4)
        >>> a.rows()
        ['AC--', '-DEF']
    """
    ordered = list(records)
    if reference is not None:
        ordered = [reference] + [r for r in ordered if r is not reference]

    if not ordered:
        return Alignment(records=[], total_length=0, center=0, gap=gap)

    peaks = [r.peak_index for r in ordered]
    center = max(peaks)

    left_pads = [center - p for p in peaks]
    aligned_lengths = [pad + len(r.sequence) for pad, r in zip(left_pads, ordered)]
    total_length = max(aligned_lengths)

    aligned = [
        AlignedRecord(
            record=r,
            peak_index=p,
            left_pad=pad,
            right_pad=total_length - length,
            total_length=total_length,
            is_reference=r is reference or r.is_reference,
        )
        for r, p, pad, length in zip(ordered, peaks, left_pads, aligned_lengths)
    ]
    return Alignment(records=aligned, total_length=total_length, center=center, gap=gap)


def build_feature_alignment(
    index: ActivationIndex,
    references: Optional[ReferenceSet],
    sequence: str,
    layer: int,
    latent: int,
    gap: str = "-",
) -> Alignment:
    """
    Align the subject sequence with the top-activating references of a feature.

    The subject ("wild type") profile comes from ``index``; reference records
    keep their rank in ``metadata["rank"]``.
    """
    wild_type = AlignmentRecord(
        sequence=sequence,
        profile=index.profile(layer, latent, len(sequence)).tolist(),
        label="Wild Type",
        metadata={"entry": "", "protein_names": "Current Sequence"},
    )

    others = []
    if references is not None:
        for rank, item in enumerate(references.records(layer, latent), start=1):
            others.append(
                AlignmentRecord(
                    sequence=item.sequence,
                    profile=list(item.activations),
                    label=item.entry_name or "Unknown",
                    metadata={
                        "entry": item.entry or "N/A",
                        "protein_names": item.protein_names or "Unknown protein",
                        "score": item.score,
                        "rank": rank,
                    },
                )
            )

    return align_on_peak(others, reference=wild_type, gap=gap)
