"""Rate computation and courier selection engine."""

__version__ = "1.0.0"
