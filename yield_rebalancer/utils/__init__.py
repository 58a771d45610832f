"""Shared utilities: configuration, logging, event logs and exceptions."""
