#!/usr/bin/env python3
"""
Train the digit grid network and save it to disk.

Usage:
    python scripts/train_network.py [--epochs N] [--seed S] [--output PATH]

The script will:
1. Create a fresh 100-300-10 network
2. Run the training schedule over the canonical digit patterns
3. Print the network's confidence for every canonical pattern
4. Save the network as JSON
"""

import os
import sys
import argparse

import numpy as np

# Allow running the script from a source checkout
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from gridnet import config
from gridnet.model_persistence import save_network
from gridnet.network import Network
from gridnet.patterns import NUM_CLASSES, create_digit_pattern
from gridnet.trainer import create_and_train_network, evaluate_patterns


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('--epochs', type=int, default=config.get_epochs(),
                        help='Number of training epochs')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for weight initialization and noise')
    parser.add_argument('--output', default=config.get_model_path(),
                        help='Where to write the network JSON file')
    return parser.parse_args(argv)


def report(network: Network) -> None:
    """Print the confidence table for each canonical pattern."""
    print("\n📊 Confidence on canonical patterns:")
    for digit in range(NUM_CLASSES):
        output = network.feedforward(create_digit_pattern(digit))
        predicted = int(np.argmax(output))
        mark = '✅' if predicted == digit else '❌'
        print(f"   {mark} Digit {digit}: predicted {predicted} "
              f"({output[predicted] * 100:.1f}%)")

    print(f"\n🎯 Pattern accuracy: {evaluate_patterns(network):.0%}")


def main(argv=None) -> int:
    """Main training function."""
    config.configure_logging()
    args = parse_args(argv)

    print("=" * 60)
    print("Digit grid network trainer")
    print("=" * 60)

    if args.epochs < 0:
        print(f"❌ Error: epochs must be non-negative, got {args.epochs}")
        return 1

    rng = np.random.default_rng(args.seed) if args.seed is not None else None

    print(f"🏋️  Training for {args.epochs} epochs...")
    network = create_and_train_network(args.epochs, rng=rng)

    report(network)

    if not save_network(network, args.output):
        print(f"\n❌ Error: could not save network to {args.output}")
        return 1

    print(f"\n💾 Network saved to {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
