"""Buyer accounts mirror: incremental sync from the finance API proxy."""

__version__ = "0.1.0"
