"""
models/ - Domain Records
========================
Dataclass records persisted through the generic storage. Each persisted
field is declared with ``db.mapper.column``.
"""
