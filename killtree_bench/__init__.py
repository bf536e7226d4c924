"""Latency benchmark for external process-tree killers."""

__version__ = "0.1.0"
