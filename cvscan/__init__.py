"""Device-adaptive CV page capture and multi-page intake pipeline."""

__version__ = "0.1.0"
