"""Clients for the external services a position check talks to."""
