"""Utility modules."""

from .curl import to_curl_command
from .http import HTTPClient, HTTPResponse, Transport
from .stopwatch import Stopwatch

__all__ = ["HTTPClient", "HTTPResponse", "Stopwatch", "Transport", "to_curl_command"]
