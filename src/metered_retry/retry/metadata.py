"""
Run metadata tracking.

This module defines the RunMetadata dataclass that captures the history of
one orchestrator run for audit trails, metrics and tests.
"""

from dataclasses import dataclass, field

from metered_retry.models.enums import ErrorKind, RunState


@dataclass(frozen=True)
class RunMetadata:
    """
    History of a single orchestrator run.

    Attributes:
        key: Operation key of the run
        cost: Units reserved per attempt
        total_attempts: Upstream invocations made (0 if refused before executing)
        reservations: Successful reservations against the store
        refunds: Successful refunds
        failed_refunds: Refunds the store could not apply
        states: RunStates visited, in order, ending with a terminal state
        error_history: Classified kind of every failed attempt
        total_latency_ms: Wall time from start to terminal state (ms)
    """

    key: str
    cost: int
    total_attempts: int
    reservations: int
    refunds: int
    failed_refunds: int
    states: list[RunState]
    error_history: list[ErrorKind] = field(default_factory=list)
    total_latency_ms: int = 0

    def __post_init__(self) -> None:
        """Validate metadata invariants."""
        if self.total_attempts < 0:
            raise ValueError("total_attempts must be >= 0")

        if not self.states:
            raise ValueError("states must not be empty")

        if not self.states[-1].is_terminal:
            raise ValueError(f"final state '{self.states[-1].value}' is not terminal")

        if self.refunds + self.failed_refunds > self.reservations:
            raise ValueError("cannot refund more reservations than were made")

        if self.total_latency_ms < 0:
            raise ValueError("total_latency_ms must be >= 0")

    @property
    def final_state(self) -> RunState:
        return self.states[-1]

    @property
    def net_reservations(self) -> int:
        """Reservations still charged after the run (success: 1, failure: 0)."""
        return self.reservations - self.refunds
