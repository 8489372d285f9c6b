"""HTTP API for integration management and sync status."""
