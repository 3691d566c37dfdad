"""Production value objects."""
