"""
grid.py
~~~~~~~

Drawing grid used by the API server: parses ``"x,y x,y"`` cell lists,
renders the grid as text and converts it into a network input.
"""

from typing import List, NamedTuple, Tuple

import numpy as np

from gridnet.patterns import GRID_SIZE

FILLED = '■'
EMPTY = '□'


class GridUpdate(NamedTuple):
    """Result of ``Grid.activate``: cells switched on and rejected tokens."""
    activated: List[Tuple[int, int]]
    errors: List[str]

    @property
    def ok(self) -> bool:
        return not self.errors


class Grid(object):
    """Square grid of on/off cells, addressed as (column, row)."""

    def __init__(self, size: int = GRID_SIZE):
        self.size = size
        self.cells = np.zeros((size, size), dtype=bool)

    @classmethod
    def from_input(cls, values, size: int = GRID_SIZE) -> 'Grid':
        """Build a grid from a row-major vector or nested rows of 0/1."""
        array = np.asarray(values, dtype=float)
        if array.size != size * size:
            raise ValueError(
                f"grid must have {size * size} cells, got {array.size}"
            )
        grid = cls(size)
        grid.cells = array.reshape(size, size) != 0
        return grid

    def clear(self) -> None:
        self.cells[:, :] = False

    def activate(self, text: str) -> GridUpdate:
        """
        Switch on the cells listed in ``text``.

        Pairs are separated by whitespace and written ``col,row``.
        Malformed pairs and out-of-range coordinates are skipped and
        reported in the returned ``errors``.
        """
        activated = []
        errors = []

        for pair in text.split():
            parts = pair.split(',')
            if len(parts) != 2:
                errors.append(f"Invalid format: {pair}. Use 'x,y'.")
                continue
            try:
                col = int(parts[0])
                row = int(parts[1])
            except ValueError:
                errors.append(f"Invalid format: {pair}. Use 'x,y'.")
                continue

            if 0 <= row < self.size and 0 <= col < self.size:
                self.cells[row, col] = True
                activated.append((col, row))
            else:
                errors.append(f"Invalid coordinates: {pair}. Ignored.")

        return GridUpdate(activated, errors)

    def to_input(self) -> np.ndarray:
        """Row-major vector of 0.0/1.0 values."""
        return self.cells.astype(float).reshape(self.size * self.size)

    def render(self) -> str:
        header = '  ' + ' '.join(str(col) for col in range(self.size))
        lines = [header]
        for row in range(self.size):
            marks = ' '.join(FILLED if cell else EMPTY for cell in self.cells[row])
            lines.append(f"{row} {marks}")
        return '\n'.join(lines)
