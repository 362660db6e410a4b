"""Docker Registry V2 access layer."""
