"""Redis infrastructure — connection pool + event bus.

Learn: one Redis connection pool serves two roles:
1. Cache store → token mirror, lockout counters, single-use records
2. PUBLISH → fire-and-forget account events for downstream services

Postgres stays the source of truth for principals and issued tokens.
"""
