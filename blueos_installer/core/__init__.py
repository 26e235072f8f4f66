"""Core domain: models, services, engine, and ambient infrastructure."""
