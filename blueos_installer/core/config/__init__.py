"""Configuration — installer settings and request resolution."""
