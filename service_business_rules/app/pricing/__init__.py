"""
Pricing package for the Business Rules Service.

Filters the cached pricing rules down to those that apply to an order,
evaluates their conditions and combines the matched discounts with one of
three strategies (additive, multiplicative, best price).
"""
