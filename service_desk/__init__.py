"""Service request lifecycle API for the IT service desk."""

__version__ = "0.1.0"
