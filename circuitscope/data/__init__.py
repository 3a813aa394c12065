from .dataset import CircuitDataset

__all__ = ["CircuitDataset"]
