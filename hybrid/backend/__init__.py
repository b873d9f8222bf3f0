"""Backends: annotated IR -> target source."""
