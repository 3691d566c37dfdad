"""Configuration and observability."""
