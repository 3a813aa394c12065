"""
Analysis tools built on top of the per-feature data.

- influence: aggregation and traversal of feature-to-feature weights
- alignment: peak alignment of activation profiles
- circuits: the user-built circuit graph
"""
