"""
Persistence package.

Catalog and grant stores behind narrow interfaces (see base.py). The
PostgreSQL stores use an asyncpg pool; the memory stores back local runs
and tests and honour the same atomicity contract.
"""
