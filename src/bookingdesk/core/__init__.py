"""Core infrastructure: configuration, logging, retry, security, state."""
