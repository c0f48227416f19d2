"""Adapters layer for Ontop-Health.

This module contains the import and export adapters that sit between the
reconciliation core and files on disk. Adapters implement the contracts
defined in the domain layer and translate wire formats to domain models.
"""
