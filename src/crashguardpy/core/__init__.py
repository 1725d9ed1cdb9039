"""Core domain: models, ports and the guardian components."""
