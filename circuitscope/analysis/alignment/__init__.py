"""
circuitscope / analysis / alignment
===================================

Peak alignment: shift sequences so that each one's maximal activation lands
in a shared center column.

Example:
    >>> from circuitscope.analysis.alignment import build_feature_alignment
    >>>
    >>> alignment = build_feature_alignment(index, references, sequence, layer=2, latent=77)
    >>> for row in alignment.rows():
    ...     print(row)
"""

from .peak import (
    AlignedRecord,
    Alignment,
    AlignmentRecord,
    align_on_peak,
    build_feature_alignment,
    find_peak_index,
)

__all__ = [
    "AlignedRecord",
    "Alignment",
    "AlignmentRecord",
    "align_on_peak",
    "build_feature_alignment",
    "find_peak_index",
]
