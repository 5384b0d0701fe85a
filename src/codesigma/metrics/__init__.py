"""Run metrics and sinks."""
