"""
Business Rules Service package for the coffee shop backend.

This package decides whether an order can be placed, what it costs, how long
it takes to prepare and how many loyalty points it earns. It provides:

- app.engine: BusinessRulesEngine, the orchestrator called by order handling.
- app.cache: In-process rule configuration store with per-category TTL.
- app.availability, app.pricing, app.prep_time, app.loyalty: Rule evaluators.
- app.audit: Best-effort audit trail of applied rules.
- app.metrics: Cache hit rate and latency counters.
- app.persistence: PostgreSQL access for rule data and balances.
- app.main: Admin and diagnostics API.

Guidelines:
- Rule data is edited by administrators elsewhere and only read here.
- Audit writes never fail the operation that produced them.
- Keep evaluation deterministic for a given configuration and clock.
"""
