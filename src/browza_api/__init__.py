"""HTTP adapter for the broker core (FastAPI)."""
