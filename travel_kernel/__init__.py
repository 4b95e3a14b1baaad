"""
Travel Kernel - receipt reconciliation core for a travel-agency back office.

Provides:
- Decimal-safe money values keyed by canonical currency codes
- Typed, machine-readable errors
- Structured JSON logging with request-scoped context
- Atomic per-agency sequence counters
"""

__version__ = "0.1.0"
