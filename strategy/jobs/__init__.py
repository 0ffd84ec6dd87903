# PATH: strategy/jobs/__init__.py
"""
Strategy jobs package.

Available entry points:
    python -m strategy.jobs.run_monitor          # Continuous monitor
    python -m strategy.jobs.run_monitor --once   # Single pass

NOTE: This __init__.py intentionally does NOT import run_monitor
to avoid side effects when importing the package.
"""

__all__: list[str] = []
