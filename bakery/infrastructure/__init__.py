"""Adapters for the production core's ports."""
