"""Observability helpers: logging setup and step traces."""
