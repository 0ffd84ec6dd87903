# PATH: execution/__init__.py
"""
Execution layer.

- state_machine: opportunity status transitions
- quoting: cache-backed and per-venue quoters
- simulator: TradeSimulator and its TTL result cache
"""
