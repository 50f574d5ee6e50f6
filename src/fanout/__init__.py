"""
fanout - guarded fan-out of content items into language variants.

A small lifecycle controller for a recurring duplication job: an admission
gate, a daily quota ledger, a single-flight execution breaker, bounded
retry, a periodic health sweep and an append-only mission log.
"""

__version__ = "0.1.0"
