"""Read downloaded vulnerability advisory feeds into an in-memory advisory store."""

__version__ = "0.1.0"