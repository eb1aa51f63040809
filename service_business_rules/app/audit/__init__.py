"""
Audit package for the Business Rules Service.
"""
