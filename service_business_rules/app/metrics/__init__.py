"""
Performance instrumentation for the business rules engine.

Tracks cache hit rate and per-operation latency in process and mirrors the
samples into the shared Prometheus collector.
"""
