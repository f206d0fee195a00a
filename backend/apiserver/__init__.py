"""Modular REST API server with API-key access control."""
