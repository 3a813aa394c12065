"""
circuitscope: explore latent features of a protein language model and build
circuits from them.
"""

from .analysis.alignment import align_on_peak, build_feature_alignment
from .analysis.circuits import CircuitGraph
from .analysis.influence import WeightAggregator, top_by_magnitude
from .config import ViewerConfig
from .data import CircuitDataset
from .errors import CircuitScopeError, MalformedInputError, MalformedSnapshotError, NotFoundError
from .features import ActivationIndex, ReferenceSet

__version__ = "0.1.0"

__all__ = [
    "ActivationIndex",
    "CircuitDataset",
    "CircuitGraph",
    "CircuitScopeError",
    "MalformedInputError",
    "MalformedSnapshotError",
    "NotFoundError",
    "ReferenceSet",
    "ViewerConfig",
    "WeightAggregator",
    "align_on_peak",
    "build_feature_alignment",
    "top_by_magnitude",
]
