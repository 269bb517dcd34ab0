"""
network.py
~~~~~~~~~~

A single hidden-layer sigmoid network trained one example at a time with
backpropagation. Weights are stored input-major: ``weights_input_hidden``
has shape ``(input_size, hidden_size)`` and ``weights_hidden_output`` has
shape ``(hidden_size, output_size)``.
"""

from typing import Iterable, List, Optional, Tuple

import numpy as np

from gridnet.errors import InvalidInputShape

INPUT_SIZE = 100
HIDDEN_SIZE = 300
OUTPUT_SIZE = 10
LEARNING_RATE = 0.005

# Largest change a single update may apply to one weight
MAX_WEIGHT_DELTA = 0.1

# Beyond this magnitude the sigmoid is forced to exactly 0.0 or 1.0
SIGMOID_LIMIT = 20.0


def sigmoid(z):
    """
    Clamped logistic function.

    Returns exactly 0.0 below -20 and exactly 1.0 above 20, so ``exp`` is
    never evaluated on extreme values. Works on scalars and arrays.
    """
    z = np.asarray(z, dtype=float)
    inner = np.clip(z, -SIGMOID_LIMIT, SIGMOID_LIMIT)
    result = np.where(
        z < -SIGMOID_LIMIT, 0.0,
        np.where(z > SIGMOID_LIMIT, 1.0, 1.0 / (1.0 + np.exp(-inner)))
    )
    if result.ndim == 0:
        return float(result)
    return result


def sigmoid_prime(activation):
    """Derivative of the sigmoid, expressed in terms of its output."""
    return activation * (1.0 - activation)


def _as_vector(values, size: int, name: str) -> np.ndarray:
    """Flatten ``values`` to a float vector, rejecting the wrong length."""
    try:
        vector = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputShape(f"{name} is not numeric: {e}") from e

    if vector.size != size:
        raise InvalidInputShape(
            f"{name} must have {size} elements, got {vector.size}"
        )
    return vector.reshape(size)


class Network(object):
    """
    Fully-connected network with one sigmoid hidden layer.

    The network owns its parameter arrays; ``train`` mutates them in place.
    Sizes are fixed at construction.
    """

    def __init__(
        self,
        input_size: int = INPUT_SIZE,
        hidden_size: int = HIDDEN_SIZE,
        output_size: int = OUTPUT_SIZE,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Create a network with scaled-uniform random weights and zero biases.

        Args:
            input_size: Number of input units
            hidden_size: Number of hidden units
            output_size: Number of output units
            rng: Random generator used for initialization; a fresh
                unseeded generator is created when omitted
        """
        self._allocate(input_size, hidden_size, output_size)

        if rng is None:
            rng = np.random.default_rng()

        input_scale = np.sqrt(2.0 / (input_size + hidden_size))
        hidden_scale = np.sqrt(2.0 / (hidden_size + output_size))

        self.weights_input_hidden = rng.uniform(
            -input_scale, input_scale, size=(input_size, hidden_size)
        )
        self.weights_hidden_output = rng.uniform(
            -hidden_scale, hidden_scale, size=(hidden_size, output_size)
        )

    @classmethod
    def blank(
        cls,
        input_size: int = INPUT_SIZE,
        hidden_size: int = HIDDEN_SIZE,
        output_size: int = OUTPUT_SIZE
    ) -> 'Network':
        """
        Build a zero-filled network without drawing any random numbers.

        Used when restoring persisted state, which overwrites every field.
        """
        network = cls.__new__(cls)
        network._allocate(input_size, hidden_size, output_size)
        return network

    def _allocate(self, input_size: int, hidden_size: int,
                  output_size: int) -> None:
        for name, value in (('input_size', input_size),
                            ('hidden_size', hidden_size),
                            ('output_size', output_size)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) \
                    or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

        self.input_size = int(input_size)
        self.hidden_size = int(hidden_size)
        self.output_size = int(output_size)
        self.learning_rate = LEARNING_RATE

        self.weights_input_hidden = np.zeros((self.input_size, self.hidden_size))
        self.weights_hidden_output = np.zeros((self.hidden_size, self.output_size))
        self.bias_hidden = np.zeros(self.hidden_size)
        self.bias_output = np.zeros(self.output_size)

    @property
    def sizes(self) -> List[int]:
        return [self.input_size, self.hidden_size, self.output_size]

    def set_parameters(
        self,
        weights_input_hidden,
        weights_hidden_output,
        bias_hidden,
        bias_output
    ) -> None:
        """
        Replace all four parameter arrays.

        Raises:
            InvalidInputShape: If any array does not match the network sizes
        """
        expected = (
            ('weights_input_hidden', weights_input_hidden,
             (self.input_size, self.hidden_size)),
            ('weights_hidden_output', weights_hidden_output,
             (self.hidden_size, self.output_size)),
            ('bias_hidden', bias_hidden, (self.hidden_size,)),
            ('bias_output', bias_output, (self.output_size,)),
        )

        arrays = {}
        for name, values, shape in expected:
            try:
                array = np.array(values, dtype=float)
            except (TypeError, ValueError) as e:
                raise InvalidInputShape(f"{name} is not numeric: {e}") from e
            if array.shape != shape:
                raise InvalidInputShape(
                    f"{name} must have shape {shape}, got {array.shape}"
                )
            arrays[name] = array

        for name, array in arrays.items():
            setattr(self, name, array)

    def _forward(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        hidden = sigmoid(self.bias_hidden + x @ self.weights_input_hidden)
        output = sigmoid(self.bias_output + hidden @ self.weights_hidden_output)
        return hidden, output

    def feedforward(self, x) -> np.ndarray:
        """
        Return the output activations for input ``x``.

        ``x`` may be any array-like holding exactly ``input_size`` values
        (a flat vector, a column vector or a row-major grid).
        """
        x = _as_vector(x, self.input_size, 'input')
        _, output = self._forward(x)
        return output

    def predict(self, x) -> int:
        """Return the index of the strongest output unit."""
        return int(np.argmax(self.feedforward(x)))

    def evaluate(self, samples: Iterable[Tuple[object, int]]) -> int:
        """
        Return the number of ``(input, label)`` samples predicted correctly.

        Labels are class indices, not one-hot vectors.
        """
        return sum(int(self.predict(x) == int(y)) for x, y in samples)

    def train(self, x, target) -> None:
        """
        Apply one backpropagation update for a single example.

        Error terms are computed from the pre-update activations and
        weights; each weight change is clamped to ``MAX_WEIGHT_DELTA``
        while bias changes are not.

        Args:
            x: Input values, ``input_size`` elements
            target: Desired output values, ``output_size`` elements

        Raises:
            InvalidInputShape: If ``x`` or ``target`` has the wrong length
        """
        x = _as_vector(x, self.input_size, 'input')
        target = _as_vector(target, self.output_size, 'target')

        hidden, output = self._forward(x)

        output_error = (target - output) * sigmoid_prime(output)
        hidden_error = (self.weights_hidden_output @ output_error) \
            * sigmoid_prime(hidden)

        lr = self.learning_rate
        self.weights_hidden_output += np.clip(
            lr * np.outer(hidden, output_error),
            -MAX_WEIGHT_DELTA, MAX_WEIGHT_DELTA
        )
        self.weights_input_hidden += np.clip(
            lr * np.outer(x, hidden_error),
            -MAX_WEIGHT_DELTA, MAX_WEIGHT_DELTA
        )

        self.bias_output += lr * output_error
        self.bias_hidden += lr * hidden_error

    def __repr__(self) -> str:
        return f"Network(sizes={self.sizes})"
