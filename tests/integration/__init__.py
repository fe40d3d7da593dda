"""
Integration tests for the metered retry orchestrator.

Test components against real external services:
- Redis quota store (Lua scripts, contention, refund dedupe)
- Orchestrator end to end on a Redis-backed store

Skipped when Redis is not reachable on localhost:6379.
"""
