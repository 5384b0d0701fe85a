"""Repair: fixers, the orchestrator, backups and undo."""
