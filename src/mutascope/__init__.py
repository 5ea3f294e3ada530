"""mutascope: mutation testing engine."""

__version__ = "0.1.0"
