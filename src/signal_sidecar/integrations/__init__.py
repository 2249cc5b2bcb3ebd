"""Integrations with external coordination services."""
