"""registry-ui: Docker Registry catalog browser."""
