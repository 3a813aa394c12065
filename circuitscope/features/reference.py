"""
Top-activating reference proteins for each latent.

The reference set maps layer -> latent -> list of records, each record being a
protein sequence from a reference corpus together with the latent's
activation at every residue.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import MalformedInputError


@dataclass
class ReferenceRecord:
    """
    One top-activating reference sequence for a latent.

    Attributes:
        sequence: Amino-acid sequence.
        activations: Latent activation per residue.
        score: Ranking score of this record.
        entry: Database accession (e.g. UniProt entry).
        entry_name: Database entry name.
        protein_names: Human-readable protein name(s).
        seq_len: Declared sequence length (falls back to ``len(sequence)``).
    """
    sequence: str
    activations: List[float]
    score: float = 0.0
    entry: Optional[str] = None
    entry_name: Optional[str] = None
    protein_names: Optional[str] = None
    seq_len: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.seq_len is None:
            self.seq_len = len(self.sequence)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceRecord":
        """Parse a record using the field names of the top-activations file."""
        if "Sequence" not in data or "Activations" not in data:
            raise MalformedInputError(
                "Reference record must contain 'Sequence' and 'Activations' fields"
            )
        known = {"Sequence", "Activations", "Score", "Entry", "Entry Name", "Protein names", "seq_len"}
        return cls(
            sequence=data["Sequence"],
            activations=[float(a) for a in data["Activations"]],
            score=float(data.get("Score", 0.0)),
            entry=data.get("Entry"),
            entry_name=data.get("Entry Name"),
            protein_names=data.get("Protein names"),
            seq_len=data.get("seq_len"),
            metadata={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Sequence": self.sequence,
            "Activations": list(self.activations),
            "Score": self.score,
            "Entry": self.entry,
            "Entry Name": self.entry_name,
            "Protein names": self.protein_names,
            "seq_len": self.seq_len,
            **self.metadata,
        }

    @property
    def label(self) -> str:
        return f"{self.entry or 'N/A'} ({self.entry_name or 'Unknown'})"


class ReferenceSet:
    """Lookup of reference records by (layer, latent)."""

    def __init__(self, records: Optional[Dict[int, Dict[int, List[ReferenceRecord]]]] = None):
        self._records: Dict[int, Dict[int, List[ReferenceRecord]]] = records or {}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ReferenceSet":
        """
        Build from the top-activations document.

        Accepts either the bare ``{layer: {latent: [records]}}`` mapping or the
        same mapping wrapped in a ``{"layers": ...}`` object. Layer and latent
        keys may be strings (as in JSON) or ints.
        """
        if not data:
            return cls()
        if "layers" in data:
            data = data["layers"]

        records: Dict[int, Dict[int, List[ReferenceRecord]]] = {}
        for layer_key, latents in data.items():
            try:
                layer = int(layer_key)
            except (TypeError, ValueError):
                raise MalformedInputError(f"Layer key must be an integer, got {layer_key!r}")
            records[layer] = {}
            for latent_key, items in latents.items():
                try:
                    latent = int(latent_key)
                except (TypeError, ValueError):
                    raise MalformedInputError(f"Latent key must be an integer, got {latent_key!r}")
                records[layer][latent] = [ReferenceRecord.from_dict(item) for item in items]
        return cls(records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layers": {
                str(layer): {
                    str(latent): [r.to_dict() for r in items]
                    for latent, items in latents.items()
                }
                for layer, latents in self._records.items()
            }
        }

    def records(self, layer: int, latent: int) -> List[ReferenceRecord]:
        """Records for (layer, latent), best first. Empty if none were loaded."""
        return list(self._records.get(layer, {}).get(latent, []))

    def __contains__(self, key) -> bool:
        layer, latent = key
        return latent in self._records.get(layer, {})

    def __len__(self) -> int:
        return sum(len(latents) for latents in self._records.values())

    def __repr__(self) -> str:
        return f"ReferenceSet(layers={len(self._records)}, latents={len(self)})"
