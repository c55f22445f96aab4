"""Batch photo ingestion: priority queue, bounded scheduler, media pipeline."""

__version__ = "0.1.0"
