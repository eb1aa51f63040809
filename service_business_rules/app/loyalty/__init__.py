"""
Loyalty package for the Business Rules Service.

Calculates points from the loyalty configuration (points per dollar and
per-coffee bonus multipliers) and awards them to customer balances.
"""
