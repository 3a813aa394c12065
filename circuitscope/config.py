"""
Viewer configuration.

Holds the handful of constants the engine needs (canvas placement grid,
default edge cap, gap character, snapshot version) in a single dataclass that
can be saved and loaded as JSON or YAML.
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Union

from .errors import MalformedInputError


@dataclass
class ViewerConfig:
    """
    Configuration for a circuitscope session.

    Attributes:
        nodes_per_row: Number of canvas nodes placed per row before wrapping.
        origin_x: X coordinate of the first placed node.
        origin_y: Y coordinate of the first placed node.
        spacing_x: Horizontal distance between placed nodes.
        spacing_y: Vertical distance between rows of placed nodes.
        max_default_edges: Cap on raw influence samples shown after a dataset load.
        gap_char: Character used for alignment padding.
        snapshot_version: Version number written into graph snapshots.
    """
    nodes_per_row: int = 5
    origin_x: float = 20.0
    origin_y: float = 20.0
    spacing_x: float = 120.0
    spacing_y: float = 80.0
    max_default_edges: int = 1000
    gap_char: str = "-"
    snapshot_version: int = 1

    def __post_init__(self):
        if self.nodes_per_row < 1:
            raise MalformedInputError(f"nodes_per_row must be >= 1, got {self.nodes_per_row}")
        if self.max_default_edges < 1:
            raise MalformedInputError(
                f"max_default_edges must be >= 1, got {self.max_default_edges}"
            )
        if len(self.gap_char) != 1:
            raise MalformedInputError(f"gap_char must be a single character, got {self.gap_char!r}")

    def grid_position(self, index: int) -> tuple:
        """Return the (x, y) placement of the ``index``-th node on the canvas."""
        col = index % self.nodes_per_row
        row = index // self.nodes_per_row
        return (
            self.origin_x + col * self.spacing_x,
            self.origin_y + row * self.spacing_y,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViewerConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise MalformedInputError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**data)

    def save(self, path: Union[str, Path]) -> None:
        """
        Save the config to a file (JSON or YAML based on extension).

        Raises:
            ValueError: If the file extension is not supported
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()

        if path.suffix.lower() in (".yaml", ".yml"):
            import yaml

            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        elif path.suffix.lower() == ".json":
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        else:
            raise ValueError(
                f"Unsupported file extension: {path.suffix}. "
                "Try using .json or .yaml instead"
            )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ViewerConfig":
        """Load a config from a JSON or YAML file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        if path.suffix.lower() in (".yaml", ".yml"):
            import yaml

            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        elif path.suffix.lower() == ".json":
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise ValueError(
                f"Unsupported file extension: {path.suffix}. "
                "Try using .json or .yaml instead"
            )

        if not isinstance(data, dict):
            raise MalformedInputError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)
