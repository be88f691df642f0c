"""Core (UI-agnostic) picklist logic.

This package contains:
- CSV ingestion and partial metric updates
- computed columns (formula parsing and evaluation)
- ordering, activation and column statistics
- persistence adapters and the session that ties them together
"""
