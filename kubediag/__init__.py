"""kubediag: node agent that drives Abnormals through the diagnosis pipeline."""

__version__ = "0.1.0"
