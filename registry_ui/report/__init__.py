"""Catalog renderers."""
