"""Shell adapters — commands and host files."""
