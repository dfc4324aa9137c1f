"""Services Layer — order ledger, access gate, review store, rating aggregator.

Invariants:
    - Each service wraps one AsyncSession for the duration of a request
    - Services commit their own transitions; routes never commit

Design Decisions:
    - One service class per component for locality
"""
