"""Transport contract: the only place that touches sockets."""

from abc import ABC, abstractmethod

from ..core.outcome import HttpResult
from ..core.request import CanonicalRequest


class Transport(ABC):
    """
    Sends a signed request, returns the response.

    Implementations raise TransportError (or a subclass) when no response
    was received, and must not retry on their own.
    """

    @abstractmethod
    def send(self, request: CanonicalRequest) -> HttpResult:
        """Send one attempt."""

    def release(self, result: HttpResult) -> None:
        """Drain and close the response (called once per received response)."""

    def close(self) -> None:
        """Release pooled connections."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
