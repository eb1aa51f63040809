"""
Availability package for the Business Rules Service.

Checks ordered coffees against their stored status and seasonal window and
writes status changes back through the persistence layer.
"""
