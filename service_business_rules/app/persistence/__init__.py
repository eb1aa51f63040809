"""
Persistence package for the Business Rules Service.

- postgres: asyncpg access to rule configuration, loyalty balances and the
  rule audit log.
"""
