"""Shared core helpers (service identity, backoff, logging, locks)."""

SERVICE_NAME = "orchestrator"
