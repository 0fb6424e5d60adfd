"""Batch-generate catalog images for vehicle records and store the URLs back."""

__version__ = "0.1.0"
