"""Persistence — run history ledger."""
