"""
Preparation time estimation for the Business Rules Service.
"""
