"""Session-aware client for a self-hosted calendar and contacts server."""

__version__ = "0.1.0"
