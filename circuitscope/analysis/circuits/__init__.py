"""
circuitscope / analysis / circuits
==================================

The user-built circuit: a graph of latent features picked from the activation
grid, connected by user-drawn edges and by edges derived from aggregated
influence weights.

- **Nodes** are single (layer, latent) features, or composites grouping several
- **Edges** join two nodes; derived edges are regenerated, never saved

Example:
    >>> from circuitscope.analysis.circuits import CircuitGraph
    >>> from circuitscope.analysis.influence import WeightAggregator
    >>>
    >>> graph = CircuitGraph(aggregated=WeightAggregator.build(samples))
    >>> graph.add_node(latent=2, layer=0)
    >>> graph.add_node(latent=5, layer=1)
    >>> graph.select_exclusive(0)
    >>> graph.delete_selected()
    >>>
    >>> graph.save("circuit.json")
"""

from .graph import CircuitGraph, GraphState
from .node import CircuitEdge, CircuitNode, FeatureRef
from .selection import Selection, SelectionKind

__all__ = [
    "CircuitGraph",
    "GraphState",
    "CircuitNode",
    "CircuitEdge",
    "FeatureRef",
    "Selection",
    "SelectionKind",
]
