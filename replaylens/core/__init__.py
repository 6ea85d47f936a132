"""Data model, errors, settings and the orchestrator."""
