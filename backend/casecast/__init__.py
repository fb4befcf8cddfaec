"""Reconcile daily pandemic case feeds into one global series and forecast it."""

__version__ = "0.1.0"
