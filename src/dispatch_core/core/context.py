"""Per-operation command state read by the retry policy."""

from dataclasses import dataclass, field
from typing import Optional
import uuid

from .outcome import Outcome
from .request import CanonicalRequest


@dataclass
class Command:
    """Mutable state of one logical operation across its attempts.

    Attributes:
        request: The unsigned request the operation was built from
        request_id: Correlation identifier shared by every attempt
        attempts: Attempts already sent (including the current one once sent)
        failures: Attempts that did not succeed
        last_outcome: Outcome of the most recent attempt

    Example:
        >>> cmd = Command(CanonicalRequest.from_url('GET', 'https://api.example.com/servers'))
        >>> cmd.record(outcome)
        >>> cmd.attempts
        1
    """

    request: CanonicalRequest
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempts: int = 0
    failures: int = 0
    last_outcome: Optional[Outcome] = None

    def record(self, outcome: Outcome) -> None:
        """Account for one finished attempt."""
        self.attempts += 1
        if not outcome.is_success:
            self.failures += 1
        self.last_outcome = outcome

    @property
    def method(self) -> str:
        return self.request.method.value
