#!/usr/bin/env python3
"""
Inspect a saved network file.

Prints the architecture and parameter counts of a network written by
``feedforward.save_network``, checks that re-serializing it reproduces the
file exactly, and optionally scores it on a dataset.

Usage:
    python scripts/inspect_network.py NETWORK_FILE [DATASET.npz]

The dataset, when given, must hold ``features`` (one example per row) and
``labels`` (one-hot, one column per class).
"""

import os
import sys

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from feedforward import NetworkError, cross_entropy_loss, dumps, read_network


def describe(path: str):
    """Print the structure of the network at ``path`` and return it."""
    print(f"📂 Reading network from: {path}")
    network = read_network(path)

    print(f"✅ Loaded {network.num_layers} layers:")
    for i, layer in enumerate(network.layers):
        name = layer.activation.serial_name if layer.activation else '-'
        print(f"   - {i}: {layer.role.name:<6} size={layer.size:<5} activation={name}")

    params = sum(c.weights.size + c.bias.size for c in network.connections)
    print(f"   {network.num_connections} connections, {params} parameters")
    return network


def verify_round_trip(path: str, network) -> bool:
    """Check that serializing the network again gives back the same file."""
    print("\n🔍 Verifying round trip...")
    with open(path, 'r', encoding='ascii') as f:
        original = f.read()

    if dumps(network) != original:
        print("⚠️  Re-serialized network differs from the file "
              "(written by an older writer?)")
        return False

    print("✅ Round trip is exact.")
    return True


def evaluate(network, dataset_path: str) -> None:
    """Print accuracy and loss on an .npz dataset."""
    print(f"\n📊 Evaluating on: {dataset_path}")
    with np.load(dataset_path) as data:
        features = data['features']
        labels = data['labels']

    acc = network.accuracy(features, labels)
    loss = cross_entropy_loss(None, network.output_layer.input, labels)
    print(f"   - Examples: {len(features)}")
    print(f"   - Accuracy: {acc:.2%}")
    print(f"   - Loss:     {loss:.4f}")


def main():
    if len(sys.argv) not in (2, 3):
        print(__doc__)
        sys.exit(2)

    path = sys.argv[1]
    try:
        network = describe(path)
        verify_round_trip(path, network)
        if len(sys.argv) == 3:
            evaluate(network, sys.argv[2])
    except NetworkError as e:
        print(f"\n❌ Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
