"""
Unit tests for the metered retry orchestrator.

Test individual components in isolation:
- Data models (outcome helpers, metadata invariants, operation keys)
- Error classifier and backoff policy
- Rate-limit ledger (expiry, sweep, thread safety)
- Quota stores and client (in-memory, Redis Lua via fakeredis)
- Orchestrator state machine (retry, refund, cooldown, cancellation)
- Outcome sinks, wiring, logging processors
"""
