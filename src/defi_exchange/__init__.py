"""Agent-based simulation of a constant-product native/token exchange."""

__version__ = "1.0.0"
