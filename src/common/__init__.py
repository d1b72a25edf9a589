"""
Shared helpers for stucky's host integrations.

Modules:
- capabilities: capability grants and the `can(principal, capability)` policy
- telegram: Telegram Bot API client used by the command poller
- rate_limiter: sliding-window limiter for outgoing API calls
"""

__all__ = [
    "capabilities",
    "telegram",
    "rate_limiter",
]
