"""Ontop-Health: cross-source patient record reconciliation."""

__version__ = "1.0.0"
