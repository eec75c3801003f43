"""Airline operations API: CRUD over airline data guarded by integrity checks."""
