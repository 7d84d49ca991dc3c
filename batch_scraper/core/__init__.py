"""Core infrastructure: configuration, logging, pacing and health tracking."""
