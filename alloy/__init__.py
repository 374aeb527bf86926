"""Alloy procurement service: design file to paid purchase order."""

__version__ = "0.3.0"
