"""
Query package.

Read-only answers for callers: single-plan access checks and the per-user
reconciliation of grants against the full catalog.
"""
