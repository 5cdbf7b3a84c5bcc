"""Unified Health: multi-source daily health reconciliation."""

__version__ = "0.1.0"
