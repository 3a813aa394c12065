"""
Dataset bundle: the files describing one subject sequence.

A dataset directory holds:

- ``activation_indices.json``: ``[layer, position, value, latent]`` rows
- ``seq.txt``: the subject sequence
- ``top_activations.json``: top-activating reference proteins per feature
- ``virtual_weights.json`` (optional): influence sample rows
- ``canvas-state.json`` (optional): a saved circuit snapshot
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..analysis.alignment.peak import Alignment, build_feature_alignment
from ..analysis.circuits.graph import CircuitGraph
from ..analysis.influence.weights import (
    AggregatedEdges,
    InfluenceSample,
    WeightAggregator,
    default_threshold,
    parse_samples,
    top_by_magnitude,
)
from ..config import ViewerConfig
from ..errors import MalformedInputError
from ..features.activations import ActivationIndex
from ..features.reference import ReferenceSet

_logger = logging.getLogger(__name__)

ACTIVATIONS_FILE = "activation_indices.json"
SEQUENCE_FILE = "seq.txt"
REFERENCES_FILE = "top_activations.json"
INFLUENCES_FILE = "virtual_weights.json"
SNAPSHOT_FILE = "canvas-state.json"


def _read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"{path.name} is not valid JSON: {e}")


@dataclass
class CircuitDataset:
    """
    Everything loaded from one dataset directory.

    Attributes:
        sequence: Subject sequence, whitespace stripped
        activations: Activation index over the subject sequence
        references: Top-activating reference proteins
        influences: Raw influence samples (empty when the file is absent)
        aggregated: Influence samples aggregated per feature pair
        snapshot: Bundled circuit snapshot, if any
        config: Viewer configuration used for new graphs and thresholds

    Example:
        >>> dataset = CircuitDataset.load("examples/ubiquitin")
        >>> graph = dataset.new_graph()
        >>> visible = dataset.visible_influences()
    """
    sequence: str
    activations: ActivationIndex
    references: ReferenceSet
    influences: List[InfluenceSample] = field(default_factory=list)
    aggregated: AggregatedEdges = field(default_factory=AggregatedEdges)
    snapshot: Optional[Dict[str, Any]] = None
    config: ViewerConfig = field(default_factory=ViewerConfig)

    @classmethod
    def load(cls, directory: Union[str, Path], config: Optional[ViewerConfig] = None) -> "CircuitDataset":
        """
        Read a dataset directory.

        Raises:
            FileNotFoundError: If a required file is missing
            MalformedInputError: If a file cannot be parsed
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Dataset directory not found: {directory}")

        for name in (ACTIVATIONS_FILE, SEQUENCE_FILE, REFERENCES_FILE):
            if not (directory / name).exists():
                raise FileNotFoundError(f"Dataset file not found: {directory / name}")

        activations = ActivationIndex.from_rows(_read_json(directory / ACTIVATIONS_FILE))
        sequence = (directory / SEQUENCE_FILE).read_text(encoding="utf-8").strip()
        references = ReferenceSet.from_dict(_read_json(directory / REFERENCES_FILE))

        influences: List[InfluenceSample] = []
        influences_path = directory / INFLUENCES_FILE
        if influences_path.exists():
            influences = parse_samples(_read_json(influences_path))

        snapshot = None
        snapshot_path = directory / SNAPSHOT_FILE
        if snapshot_path.exists():
            snapshot = _read_json(snapshot_path)

        _logger.info(
            "Loaded dataset %s: %d residues, %d activations, %d influence samples%s",
            directory.name, len(sequence), len(activations), len(influences),
            ", with snapshot" if snapshot is not None else "",
        )

        return cls(
            sequence=sequence,
            activations=activations,
            references=references,
            influences=influences,
            aggregated=WeightAggregator.build(influences),
            snapshot=snapshot,
            config=config or ViewerConfig(),
        )

    @property
    def has_influences(self) -> bool:
        return bool(self.influences)

    @property
    def default_threshold(self) -> float:
        """Percent of raw influence samples shown by default."""
        return default_threshold(len(self.influences), self.config.max_default_edges)

    def visible_influences(self, percent: Optional[float] = None) -> List[InfluenceSample]:
        """
        Raw influence samples above the magnitude threshold.

        Without ``percent`` the default threshold applies and never more than
        ``config.max_default_edges`` samples are returned.
        """
        if percent is None:
            visible = top_by_magnitude(self.influences, self.default_threshold)
            return visible[:self.config.max_default_edges]
        return top_by_magnitude(self.influences, percent)

    def feature_alignment(self, layer: int, latent: int) -> Alignment:
        """Align the subject sequence with the references of (layer, latent), padded with ``config.gap_char``."""
        return build_feature_alignment(
            self.activations, self.references, self.sequence, layer, latent, gap=self.config.gap_char
        )

    def new_graph(self, restore_snapshot: bool = True) -> CircuitGraph:
        """
        A CircuitGraph bound to this dataset's aggregated weights.

        The bundled snapshot is restored into it unless ``restore_snapshot``
        is False.
        """
        graph = CircuitGraph(aggregated=self.aggregated, config=self.config)
        if restore_snapshot and self.snapshot is not None:
            graph.restore(self.snapshot)
        return graph

    def __repr__(self) -> str:
        return (
            f"CircuitDataset(length={len(self.sequence)}, activations={len(self.activations)}, "
            f"influences={len(self.influences)}, aggregated={len(self.aggregated)})"
        )
