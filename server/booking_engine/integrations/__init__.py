"""Clients for external services the engine calls out to."""
