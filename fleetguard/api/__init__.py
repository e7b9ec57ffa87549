"""HTTP surface of fleetguard (FastAPI)."""
