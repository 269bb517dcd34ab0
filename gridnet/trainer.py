"""
trainer.py
~~~~~~~~~~

Epoch-based training schedule over the canonical digit patterns.

Every epoch trains once on each digit's base pattern. Every tenth epoch
also trains on a noisy copy and four one-cell shifts of each pattern.
"""

import time
import logging
from typing import Any, Callable, Dict, Optional

import numpy as np

from gridnet.augment import add_noise, shift_pattern
from gridnet.network import Network, INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE
from gridnet.patterns import NUM_CLASSES, create_digit_pattern, one_hot

logger = logging.getLogger(__name__)

EPOCHS = 5000
AUGMENT_EVERY = 10
PROGRESS_EVERY = 100
NOISE_LEVEL = 0.05

# (dx, dy): right, left, up, down
SHIFTS = [(1, 0), (-1, 0), (0, -1), (0, 1)]


def train_network(
    network: Network,
    epochs: int = EPOCHS,
    rng: Optional[np.random.Generator] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None
) -> Network:
    """
    Run the full training schedule on ``network`` in place.

    Args:
        network: Network to train; its parameters keep evolving if it
            was trained before
        epochs: Number of epochs to run
        rng: Random generator for the noise augmentation; when omitted
            each noisy copy draws from its own fresh generator
        callback: Called every PROGRESS_EVERY epochs with a dict holding
            'epoch', 'total_epochs' and 'elapsed_time'

    Returns:
        The same network, trained

    Raises:
        ValueError: If ``epochs`` is negative
    """
    if epochs < 0:
        raise ValueError(f"epochs must be non-negative, got {epochs}")

    logger.info(f"Training network {network.sizes} for {epochs} epochs")
    start_time = time.time()

    for epoch in range(epochs):
        if epoch % PROGRESS_EVERY == 0:
            logger.info(f"Epoch: {epoch}/{epochs}")
            if callback is not None:
                callback({
                    'epoch': epoch,
                    'total_epochs': epochs,
                    'elapsed_time': time.time() - start_time
                })

        for digit in range(NUM_CLASSES):
            target = one_hot(digit)
            base_pattern = create_digit_pattern(digit)
            network.train(base_pattern, target)

            if epoch % AUGMENT_EVERY == 0:
                network.train(add_noise(base_pattern, NOISE_LEVEL, rng), target)
                for dx, dy in SHIFTS:
                    network.train(shift_pattern(base_pattern, dx, dy), target)

    elapsed = time.time() - start_time
    logger.info(
        f"Training completed in {elapsed:.1f}s, "
        f"pattern accuracy {evaluate_patterns(network):.0%}"
    )
    if callback is not None:
        callback({
            'epoch': epochs,
            'total_epochs': epochs,
            'elapsed_time': elapsed
        })
    return network


def create_and_train_network(
    epochs: int = EPOCHS,
    rng: Optional[np.random.Generator] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None
) -> Network:
    """Build a fresh 100-300-10 network and run the training schedule."""
    network = Network(INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE, rng=rng)
    return train_network(network, epochs, rng=rng, callback=callback)


def evaluate_patterns(network: Network) -> float:
    """Fraction of the canonical digit patterns the network classifies."""
    samples = [(create_digit_pattern(d), d) for d in range(NUM_CLASSES)]
    return network.evaluate(samples) / NUM_CLASSES
