"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

JSON file persistence for gridnet networks.
Stores the layer sizes and all four parameter arrays as human-readable text.
"""

import json
import os
import logging
from typing import Any, Callable, Dict, Optional

import numpy as np

from gridnet.errors import DeserializationError, InvalidInputShape
from gridnet.network import Network
from gridnet.trainer import EPOCHS, create_and_train_network

# Configure module logger
logger = logging.getLogger(__name__)

SIZE_FIELDS = ('input_size', 'hidden_size', 'output_size')
PARAMETER_FIELDS = (
    'weights_input_hidden',
    'weights_hidden_output',
    'bias_hidden',
    'bias_output'
)


class NetworkEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy arrays and scalars."""

    def default(self, obj: Any) -> Any:
        """
        Convert numpy values to plain Python for JSON serialization.

        Args:
            obj: Object to serialize

        Returns:
            JSON-serializable representation
        """
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        return super().default(obj)


def serialize_network(network: Network) -> str:
    """
    Encode a network as indented JSON text.

    Floats are written with Python's shortest round-trip representation,
    so decoding restores bit-identical values. The learning rate is a
    constant and is not stored.

    Args:
        network: Network to encode

    Returns:
        str: JSON document
    """
    document: Dict[str, Any] = {
        'input_size': network.input_size,
        'hidden_size': network.hidden_size,
        'output_size': network.output_size,
    }
    for field in PARAMETER_FIELDS:
        document[field] = getattr(network, field)

    return json.dumps(document, cls=NetworkEncoder, indent=2)


def deserialize_network(text: str) -> Network:
    """
    Decode a network from JSON text produced by ``serialize_network``.

    Args:
        text: JSON document

    Returns:
        Network: The restored network

    Raises:
        DeserializationError: If the document is not valid JSON, is null,
            or has missing or mismatched fields
    """
    try:
        document = json.loads(text)
    except (TypeError, ValueError, RecursionError) as e:
        raise DeserializationError(f"Invalid JSON: {e}") from e

    if document is None:
        raise DeserializationError("Deserialization returned null")
    if not isinstance(document, dict):
        raise DeserializationError(
            f"Expected a JSON object, got {type(document).__name__}"
        )

    missing = [f for f in SIZE_FIELDS + PARAMETER_FIELDS if f not in document]
    if missing:
        raise DeserializationError(f"Missing fields: {', '.join(missing)}")

    sizes = []
    for field in SIZE_FIELDS:
        value = document[field]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise DeserializationError(
                f"{field} must be a positive integer, got {value!r}"
            )
        sizes.append(value)

    # Check shapes before allocating anything the size fields ask for
    input_size, hidden_size, output_size = sizes
    expected_shapes = {
        'weights_input_hidden': (input_size, hidden_size),
        'weights_hidden_output': (hidden_size, output_size),
        'bias_hidden': (hidden_size,),
        'bias_output': (output_size,),
    }
    for field, shape in expected_shapes.items():
        try:
            actual = np.shape(document[field])
        except (TypeError, ValueError) as e:
            raise DeserializationError(f"{field} is not a regular array: {e}") from e
        if actual != shape:
            raise DeserializationError(
                f"{field} must have shape {shape}, got {actual}"
            )

    network = Network.blank(*sizes)
    try:
        network.set_parameters(*(document[f] for f in PARAMETER_FIELDS))
    except InvalidInputShape as e:
        raise DeserializationError(str(e)) from e

    for field in PARAMETER_FIELDS:
        if not np.all(np.isfinite(getattr(network, field))):
            raise DeserializationError(f"{field} contains null or non-finite values")

    return network


def save_network(network: Network, path: str) -> bool:
    """
    Save a network to a JSON file.

    Args:
        network: The network to save
        path: Destination file; its directory is created if needed

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = Network(100, 300, 10)
        >>> save_network(net, "network_data.json")
        True
    """
    try:
        text = serialize_network(network)

        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

        with open(path, 'w', encoding='utf-8') as f:
            f.write(text)

    except (TypeError, ValueError) as e:
        logger.error(f"Serialization error saving network to '{path}': {e}")
        return False
    except OSError as e:
        logger.error(f"File error saving network to '{path}': {e}")
        return False

    logger.info(f"Saved network {network.sizes} to '{path}'")
    return True


def load_network(path: str) -> Optional[Network]:
    """
    Load a network from a JSON file.

    Args:
        path: File written by ``save_network``

    Returns:
        The loaded network or None if the file is missing or invalid

    Example:
        >>> net = load_network("network_data.json")
        >>> if net:
        ...     print(f"Loaded network with sizes {net.sizes}")
    """
    if not os.path.exists(path):
        logger.warning(f"Network file '{path}' not found")
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
        network = deserialize_network(text)

    except DeserializationError as e:
        logger.error(f"Deserialization error loading network from '{path}': {e}")
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"File error loading network from '{path}': {e}")
        return None

    logger.info(f"Loaded network {network.sizes} from '{path}'")
    return network


def load_or_create_network(
    path: str,
    epochs: int = EPOCHS,
    rng: Optional[np.random.Generator] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None
) -> Network:
    """
    Load the network stored at ``path``, or create, train and save a new one.

    A missing or corrupt file never raises; it triggers the fallback.

    Args:
        path: Network file
        epochs: Training epochs for the fallback network
        rng: Random generator for the fallback network
        callback: Progress callback passed to training

    Returns:
        Network: The loaded or freshly trained network
    """
    network = load_network(path)
    if network is not None:
        return network

    logger.info(f"Creating a new network because '{path}' could not be loaded")
    network = create_and_train_network(epochs, rng=rng, callback=callback)
    save_network(network, path)
    return network
