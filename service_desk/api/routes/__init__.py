"""Route modules exposed by the API package."""

from . import ping, service_requests

__all__ = ["ping", "service_requests"]
