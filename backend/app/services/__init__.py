"""Services module - persistence, locking and orchestration layer."""
