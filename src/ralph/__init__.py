"""Ralph gate — build/test verification for autonomous coding loops."""

__version__ = "0.1.0"
