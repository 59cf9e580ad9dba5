"""Infrastructure layer for batch-update: configuration, logging, caching and audit."""
