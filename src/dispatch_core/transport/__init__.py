"""Transports: the only layer that performs network I/O."""

from .base import Transport
from .requests_transport import RequestsTransport
from .session_manager import ThreadSafeSessionManager, pooled_session_factory

__all__ = [
    "Transport",
    "RequestsTransport",
    "ThreadSafeSessionManager",
    "pooled_session_factory",
]
