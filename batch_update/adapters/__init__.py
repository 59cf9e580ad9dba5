"""Adapters for batch-update (storage backends)."""
