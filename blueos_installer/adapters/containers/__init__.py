"""Container engine adapters."""
