"""Shared models, utilities, configuration and database plumbing."""
