"""Invite crawling subsystem.

Structure:
- base.py: collaborator contracts, rate limiting and invite link helpers
- pipeline.py: search -> resolve -> verify stage driver with per-cycle dedupe
- spiders/: concrete search, resolver and verifier implementations
- runner.py: CLI entrypoint for the unattended cycle

Every external call is blocking and goes through httpx; pacing between calls is
a fixed delay handled by a RateLimiter so it can be swapped without touching
the pipeline.
"""

__all__ = [
    "base",
    "pipeline",
]
