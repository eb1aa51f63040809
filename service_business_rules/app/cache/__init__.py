"""
Cache package for the Business Rules Service.

Provides the in-process rule configuration store. Each rule category is
cached with its own TTL and reload lock; there is no cross-instance cache.
"""
