"""Pydantic models for connection configuration, cluster topology and tenant documents."""
