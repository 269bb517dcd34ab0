"""
errors.py
~~~~~~~~~

Typed failures raised by the gridnet core.
"""


class InvalidInputShape(ValueError):
    """An input, target or parameter array does not match the network sizes."""


class DeserializationError(ValueError):
    """Persisted network data is missing, unreadable or structurally invalid."""
