"""
HTTP Client Module

Session-backed HTTP client used by the price sources.
"""

from .client import HttpClient, HttpError, HttpResponse

__all__ = [
    "HttpClient",
    "HttpError",
    "HttpResponse",
]
