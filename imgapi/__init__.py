"""imgapi-compatible image registry service."""
