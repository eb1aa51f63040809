"""
Application package for the Business Rules Service.
"""
