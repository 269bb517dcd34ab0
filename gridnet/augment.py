"""
augment.py
~~~~~~~~~~

Synthetic variations of a digit pattern: random pixel noise and
spatial shifts. Both return new arrays and leave the input untouched.
"""

from typing import Optional

import numpy as np

from gridnet.patterns import GRID_SIZE


def add_noise(
    pattern,
    noise_level: float,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Toggle ``int(len(pattern) * noise_level)`` randomly chosen pixels.

    Indices are drawn with replacement, so a pixel picked twice flips back
    and the effective number of changed pixels can be lower.

    Args:
        pattern: Flat 0/1 pattern
        noise_level: Fraction of the pattern length to flip
        rng: Random generator; a new unseeded one is created per call
            when omitted
    """
    noisy = np.array(pattern, dtype=float)
    if rng is None:
        rng = np.random.default_rng()

    pixels_to_flip = int(noisy.size * noise_level)
    for index in rng.integers(0, noisy.size, size=max(pixels_to_flip, 0)):
        noisy[index] = 0.0 if noisy[index] == 1.0 else 1.0
    return noisy


def shift_pattern(pattern, dx: int, dy: int,
                  grid_size: int = GRID_SIZE) -> np.ndarray:
    """
    Move every cell by ``dx`` columns and ``dy`` rows.

    Cells that would leave the grid are dropped; vacated cells are zero.
    """
    source = np.asarray(pattern, dtype=float).reshape(grid_size, grid_size)
    shifted = np.zeros((grid_size, grid_size))

    for y in range(grid_size):
        for x in range(grid_size):
            new_x = x + dx
            new_y = y + dy
            if 0 <= new_x < grid_size and 0 <= new_y < grid_size:
                shifted[new_y, new_x] = source[y, x]

    return shifted.reshape(grid_size * grid_size)
