"""Live poker league tournament engine."""

__version__ = "0.1.0"
