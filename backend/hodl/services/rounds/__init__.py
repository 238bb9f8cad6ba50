"""Round domain services: player registry, guess ledger and resolution.

This package contains pure(ish) domain logic that should be imported by
HTTP routes, keeping transport concerns separated from core game mechanics.
"""
