"""Reliability — bounded retry, cancellable polling, run lock."""
