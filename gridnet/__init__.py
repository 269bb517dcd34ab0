"""
gridnet package
~~~~~~~~~~~~~~~

Small feed-forward network that recognizes digits drawn on a 10x10 grid.
Contains the core network implementation, the synthetic digit patterns and
their augmentation, the training schedule, model persistence, and API server.
"""

__version__ = "1.0.0"
