"""Reconcile browser bookmark exports into one store and cache the linked pages."""

__version__ = "0.1.0"
