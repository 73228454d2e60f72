"""Reconcile a local Markdown workspace with a Micropub publishing service."""

__version__ = "0.3.0"
