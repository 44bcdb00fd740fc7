"""Configuration and observability setup."""
