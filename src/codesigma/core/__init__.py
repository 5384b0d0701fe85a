"""Shared models, configuration, errors and terminal output."""
