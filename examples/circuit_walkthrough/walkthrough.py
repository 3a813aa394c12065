"""
Circuit Walkthrough: From Activations to a Saved Circuit

Key Question: "Which features fire on this protein, what do they feed into,
and where do they fire on similar proteins?"

Usage:
    python -m examples.circuit_walkthrough.walkthrough path/to/dataset [layer]
"""

import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from circuitscope.data import CircuitDataset


def main(directory, layer=0, top_k=3):
    dataset = CircuitDataset.load(directory)
    print(f"Loaded {dataset}")
    print(f"Default influence threshold: {dataset.default_threshold:.2f}%")

    graph = dataset.new_graph(restore_snapshot=False)
    ranked = dataset.activations.rank_latents(layer, len(dataset.sequence))[:top_k]

    print(f"\nTop {len(ranked)} latents in layer {layer}:")
    for peak in ranked:
        residue = dataset.sequence[peak.max_position] if dataset.sequence else "?"
        print(f"  latent {peak.latent}: {peak.max_value:.3f} at {residue}{peak.max_position}")
        graph.add_node(
            latent=peak.latent,
            layer=layer,
            position=peak.max_position,
            residue=residue,
            value=peak.max_value,
        )

        # pull in the strongest downstream feature of each
        outgoing = dataset.aggregated.outgoing_from(layer, peak.latent)
        if outgoing:
            best = outgoing[0]
            print(f"    -> ({best.to_layer}, {best.to_latent}) avg {best.avg_weight:+.4f} over {best.count}")
            graph.add_node(latent=best.to_latent, layer=best.to_layer)

    if ranked:
        alignment = dataset.feature_alignment(layer, ranked[0].latent)
        print(f"\nAlignment for latent {ranked[0].latent} (center column {alignment.center}):")
        for row, aligned in zip(alignment.rows(), alignment):
            print(f"  {aligned.record.label:<16} {row}")

    print(f"\nCircuit: {graph.summary()}")
    out = Path(directory) / "canvas-state.json"
    graph.save(out)
    print(f"Saved circuit to {out}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    logging.basicConfig(level=logging.INFO)
    main(sys.argv[1], layer=int(sys.argv[2]) if len(sys.argv) > 2 else 0)
