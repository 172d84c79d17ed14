"""Public request construction API."""

from .request_builder import RequestDescriptor, RequestExecutor, ResponseConverter

__all__ = ["RequestDescriptor", "RequestExecutor", "ResponseConverter"]
