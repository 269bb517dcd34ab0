"""
patterns.py
~~~~~~~~~~~

Canonical stroke drawings of the ten digits on a 10x10 grid.

Each digit is described by a list of strokes. A stroke is one of:

- ``('h', row, first_col, last_col)``: horizontal run, inclusive
- ``('v', col, first_row, last_row)``: vertical run, inclusive
- ``('p', row, col)``: single pixel

Cells are addressed row-major as ``row * GRID_SIZE + col``.
"""

from typing import Dict, List, Tuple

import numpy as np

GRID_SIZE = 10
NUM_CLASSES = 10

# Horizontal bars shared by the seven-segment style digits
_BARS = [('h', 2, 3, 6), ('h', 5, 3, 6), ('h', 8, 3, 6)]

DIGIT_STROKES: Dict[int, List[Tuple]] = {
    0: [('h', 2, 2, 7), ('h', 7, 2, 7), ('v', 2, 2, 7), ('v', 7, 2, 7)],
    1: [('v', 5, 2, 7), ('p', 7, 4), ('p', 7, 6)],
    2: _BARS + [('v', 6, 2, 4), ('v', 3, 5, 7)],
    3: _BARS + [('v', 6, 2, 4), ('v', 6, 6, 7)],
    4: [('v', 3, 2, 5), ('h', 5, 3, 6), ('v', 6, 2, 8)],
    5: _BARS + [('v', 3, 2, 4), ('v', 6, 5, 7)],
    6: _BARS + [('v', 3, 2, 7), ('v', 6, 5, 7)],
    7: [('h', 2, 3, 6), ('v', 6, 2, 8)],
    8: _BARS + [('v', 3, 2, 4), ('v', 3, 6, 7),
                ('v', 6, 2, 4), ('v', 6, 6, 7)],
    9: _BARS + [('v', 3, 2, 4), ('v', 6, 2, 8)],
}


def _stroke_cells(stroke: Tuple) -> List[Tuple[int, int]]:
    kind = stroke[0]
    if kind == 'h':
        _, row, first, last = stroke
        return [(row, col) for col in range(first, last + 1)]
    if kind == 'v':
        _, col, first, last = stroke
        return [(row, col) for row in range(first, last + 1)]
    if kind == 'p':
        _, row, col = stroke
        return [(row, col)]
    raise ValueError(f"Unknown stroke kind: {kind!r}")


def create_digit_pattern(digit: int) -> np.ndarray:
    """
    Draw the canonical pattern for ``digit``.

    Args:
        digit: Digit class, 0 to 9

    Returns:
        Flat array of GRID_SIZE * GRID_SIZE values, each 0.0 or 1.0

    Raises:
        ValueError: If ``digit`` is not a digit class
    """
    if isinstance(digit, bool) or not isinstance(digit, (int, np.integer)) \
            or digit not in DIGIT_STROKES:
        raise ValueError(f"digit must be between 0 and 9, got {digit!r}")

    pattern = np.zeros(GRID_SIZE * GRID_SIZE)
    for stroke in DIGIT_STROKES[digit]:
        for row, col in _stroke_cells(stroke):
            pattern[row * GRID_SIZE + col] = 1.0
    return pattern


def one_hot(digit: int, num_classes: int = NUM_CLASSES) -> np.ndarray:
    """Target vector with 1.0 at ``digit`` and 0.0 elsewhere."""
    if isinstance(digit, bool) or not isinstance(digit, (int, np.integer)) \
            or not 0 <= digit < num_classes:
        raise ValueError(
            f"digit must be between 0 and {num_classes - 1}, got {digit!r}"
        )
    target = np.zeros(num_classes)
    target[digit] = 1.0
    return target
