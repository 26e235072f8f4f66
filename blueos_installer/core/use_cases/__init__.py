"""Use cases — entry points composed from services."""
