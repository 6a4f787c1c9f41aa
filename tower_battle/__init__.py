"""Turn-based tower stacking game played through chat mentions."""

__version__ = "0.1.0"
