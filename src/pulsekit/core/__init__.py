"""Core infrastructure: configuration, logging, enrichment, reliability,
security, retention and the notification bus."""
