"""
Circuit Walkthrough Example

Loads a dataset directory (activation_indices.json, seq.txt,
top_activations.json, and optionally virtual_weights.json and
canvas-state.json), ranks the features of one layer, follows their
influence edges, aligns the strongest feature with its reference proteins,
and saves the resulting circuit.

Usage:
    python -m examples.circuit_walkthrough.walkthrough path/to/dataset [layer]
"""
