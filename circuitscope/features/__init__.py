"""
Per-feature data for circuitscope.

Key components:
- ActivationIndex: (layer, position) -> active latents on the subject sequence
- ReferenceSet: top-activating reference proteins per (layer, latent)

Example usage:
    >>> from circuitscope.features import ActivationIndex
    >>>
    >>> index = ActivationIndex.from_rows(rows)
    >>> for peak in index.rank_latents(layer=2, length=len(sequence)):
    ...     print(peak.latent, peak.max_value, peak.max_position)
"""

from .activations import ActivationIndex, ActivationSample, LatentActivation, LatentPeak
from .reference import ReferenceRecord, ReferenceSet

__all__ = [
    "ActivationIndex",
    "ActivationSample",
    "LatentActivation",
    "LatentPeak",
    "ReferenceRecord",
    "ReferenceSet",
]
