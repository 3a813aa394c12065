"""
ActivationIndex: read-only lookup of latent activations on the subject sequence.

Activation samples arrive as ``[layer, position, value, latent]`` rows. The
index groups them by (layer, position) so that the grid of active latents,
per-latent profiles along the sequence, and per-layer rankings can be read
without rescanning the raw rows.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..errors import MalformedInputError

_logger = logging.getLogger(__name__)


class ActivationSample(NamedTuple):
    """One recorded activation of a latent at a sequence position."""
    layer: int
    position: int
    value: float
    latent: int

    @classmethod
    def from_row(cls, row: Sequence) -> "ActivationSample":
        """Parse a ``[layer, position, value, latent]`` row."""
        if len(row) != 4:
            raise MalformedInputError(
                f"Activation row must have 4 fields [layer, position, value, latent], got {list(row)!r}"
            )
        layer, position, value, latent = row
        return cls(int(layer), int(position), float(value), int(latent))


class LatentActivation(NamedTuple):
    """A latent and its activation value at one (layer, position)."""
    latent: int
    value: float


@dataclass
class LatentPeak:
    """
    The strongest activation of one latent along the subject sequence.

    Attributes:
        latent: Latent index within its layer.
        max_value: Largest activation (0.0 if the latent never fires above 0).
        max_position: Position of ``max_value``.
        profile: Activation value at every position of the sequence.
    """
    latent: int
    max_value: float
    max_position: int
    profile: np.ndarray


class ActivationIndex:
    """
    Index of (layer, position) -> active latents for one dataset.

    The index is immutable once built; loading a new dataset means building a
    new index.

    Example:
        >>> index = ActivationIndex.from_rows([[0, 3, 1.5, 42], [0, 4, 0.2, 42]])
        >>> index.at(0, 3)
        [LatentActivation(latent=42, value=1.5)]
        >>> index.profile(0, 42, length=6).tolist()
        [0.0, 0.0, 0.0, 1.5, 0.2, 0.0]
    """

    def __init__(self, samples: Optional[Iterable[ActivationSample]] = None):
        self._cells: Dict[int, Dict[int, List[LatentActivation]]] = defaultdict(dict)
        self._seen: Dict[Tuple[int, int], set] = defaultdict(set)
        self._count = 0

        for sample in samples or []:
            self._insert(sample)

        # freeze: no more defaultdict growth on lookup
        self._cells = dict(self._cells)
        self._seen = dict(self._seen)
        _logger.debug(
            "Indexed %d activation samples across %d layers", self._count, len(self._cells)
        )

    @classmethod
    def from_rows(cls, rows: Optional[Iterable[Sequence]]) -> "ActivationIndex":
        """Build an index from raw ``[layer, position, value, latent]`` rows."""
        return cls(ActivationSample.from_row(row) for row in rows or [])

    def _insert(self, sample: ActivationSample) -> None:
        cell_key = (sample.layer, sample.position)
        if sample.latent in self._seen[cell_key]:
            raise MalformedInputError(
                f"Latent {sample.latent} appears twice at layer {sample.layer}, "
                f"position {sample.position}"
            )
        self._seen[cell_key].add(sample.latent)
        self._cells[sample.layer].setdefault(sample.position, []).append(
            LatentActivation(sample.latent, sample.value)
        )
        self._count += 1

    # =========================================================================
    # Lookups
    # =========================================================================

    def at(self, layer: int, position: int) -> List[LatentActivation]:
        """Active latents at (layer, position), in load order. Empty if none."""
        return list(self._cells.get(layer, {}).get(position, []))

    @property
    def layers(self) -> List[int]:
        """Layers that have at least one activation, ascending."""
        return sorted(self._cells)

    def positions(self, layer: int) -> List[int]:
        """Positions with at least one activation in ``layer``, ascending."""
        return sorted(self._cells.get(layer, {}))

    def latents(self, layer: int) -> List[int]:
        """Distinct latents active anywhere in ``layer``, in first-seen order."""
        seen = {}
        for position in sorted(self._cells.get(layer, {})):
            for item in self._cells[layer][position]:
                seen.setdefault(item.latent, None)
        return list(seen)

    def profile(self, layer: int, latent: int, length: int) -> np.ndarray:
        """
        Activation of ``latent`` at every position of a sequence of ``length``.

        Positions where the latent did not fire are 0.0. Samples recorded past
        ``length`` are ignored.
        """
        values = np.zeros(length, dtype=np.float64)
        for position, items in self._cells.get(layer, {}).items():
            if not 0 <= position < length:
                continue
            for item in items:
                if item.latent == latent:
                    values[position] = item.value
        return values

    def value_range(self) -> Optional[Tuple[float, float]]:
        """(min, max) activation over the whole dataset, or None when empty."""
        values = [
            item.value
            for layer_cells in self._cells.values()
            for items in layer_cells.values()
            for item in items
        ]
        if not values:
            return None
        return (min(values), max(values))

    def max_latents_per_position(self, length: int) -> List[int]:
        """For each position, the largest number of active latents in any layer."""
        widths = [0] * length
        for layer_cells in self._cells.values():
            for position, items in layer_cells.items():
                if 0 <= position < length:
                    widths[position] = max(widths[position], len(items))
        return widths

    def rank_latents(self, layer: int, length: int) -> List[LatentPeak]:
        """
        Rank the latents of ``layer`` by their peak activation, strongest first.

        The peak search starts at (position 0, value 0.0) and only moves on a
        strictly larger value, so a latent that never exceeds zero reports
        position 0.
        """
        peaks = []
        for latent in self.latents(layer):
            profile = self.profile(layer, latent, length)
            max_value, max_position = 0.0, 0
            for position, value in enumerate(profile):
                if value > max_value:
                    max_value, max_position = float(value), position
            peaks.append(LatentPeak(latent, max_value, max_position, profile))

        peaks.sort(key=lambda p: p.max_value, reverse=True)
        return peaks

    # =========================================================================
    # Python Magic Methods
    # =========================================================================

    def __len__(self) -> int:
        """Number of activation samples in the index."""
        return self._count

    def __bool__(self) -> bool:
        return self._count > 0

    def __repr__(self) -> str:
        return f"ActivationIndex(samples={self._count}, layers={self.layers})"
