"""Tenant lifecycle services."""
