"""JSON Schemas for registry API responses."""
