"""
OutageX: an autonomous incident response agent.

Detects runtime errors, investigates logs, commits and prior art, diagnoses
the root cause and proposes (or applies) a validated fix.
"""

__version__ = "0.1.0"
