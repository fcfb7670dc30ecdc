"""
db/ - Database Layer
====================
PostgreSQL connection pool, schema bootstrap, and the generic storage core:
execution context, executors, record mapping, storage façade and
transaction manager. Lowest layer; no dependencies on other layers.
"""
