"""
Metered retry engine.

This module implements the reserve -> execute -> (retry | refund | succeed)
protocol for costed upstream operations:

1. **Rate check**: refuse locally while the operation key is cooling down
2. **Reserve**: debit the quota store before each attempt
3. **Execute**: invoke the upstream operation
4. **Retry**: exponential backoff for retriable errors (up to MAX_RETRIES)
5. **Refund / cooldown**: compensate failed attempts, open a cooldown on exhaustion

Main Components:
    - CallOrchestrator: State machine running the protocol end to end
    - classify / ErrorClass: Upstream error classification
    - BackoffPolicy: Retry eligibility, delays, cooldown length
    - RunMetadata: Immutable history of a run
    - OrchestratorError: Raised by Outcome.raise_for_error()

Usage:
    >>> from metered_retry.retry import CallOrchestrator
    >>> orchestrator = CallOrchestrator(user_id, quota_client, ledger, settings)
    >>> outcome = await orchestrator.run(operation, cost=1, key="generate")
"""

from metered_retry.retry.backoff import BackoffPolicy
from metered_retry.retry.classifier import (
    AUTH_INVALID,
    BAD_INPUT,
    INTERNAL_ERROR,
    OVERLOADED,
    RATE_LIMITED,
    ErrorClass,
    classify,
)
from metered_retry.retry.exceptions import OrchestratorError
from metered_retry.retry.metadata import RunMetadata
from metered_retry.retry.orchestrator import CallOrchestrator

__all__ = [
    "CallOrchestrator",
    "BackoffPolicy",
    "ErrorClass",
    "classify",
    "AUTH_INVALID",
    "BAD_INPUT",
    "OVERLOADED",
    "RATE_LIMITED",
    "INTERNAL_ERROR",
    "OrchestratorError",
    "RunMetadata",
]
