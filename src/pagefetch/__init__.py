"""Browser-driven page fetch service."""

__version__ = "0.1.0"
