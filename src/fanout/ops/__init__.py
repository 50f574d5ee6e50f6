"""Operator operations returning :class:`OperationResult` envelopes."""
