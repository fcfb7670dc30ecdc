"""
db/mapper.py
------------
Declarative record <-> relation mapping.

A record is a dataclass whose persisted fields are declared with
``column()``. Four roles are required on every mapped record:
primary key, created_at, updated_at and deleted_at. The mapping of a
record type is derived once and cached.

    @dataclass
    class Product:
        name: str = column("name")
        id: Optional[int] = column("id", role=PRIMARY_KEY, default=None)
        ...

The builders return ``(sql, params)`` pairs using psycopg2 named
placeholders (``%(name)s``) and double-quoted identifiers.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional

from db.errors import MappingError

PRIMARY_KEY = "primary_key"
CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DELETED_AT = "deleted_at"

REQUIRED_ROLES = (PRIMARY_KEY, CREATED_AT, UPDATED_AT, DELETED_AT)

OPERATORS = frozenset({"=", "!=", "<", "<=", ">", ">=", "LIKE", "ILIKE"})


def column(name: str, *, role: Optional[str] = None, **kwargs) -> Any:
    """Declare a dataclass field persisted in column ``name``."""
    if role is not None and role not in REQUIRED_ROLES:
        raise MappingError(f"unknown column role {role!r}")
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata["column"] = name
    if role is not None:
        metadata["role"] = role
    return field(metadata=metadata, **kwargs)


def quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def escape_like(value: str) -> str:
    """Escape LIKE/ILIKE wildcards so ``value`` matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class ColumnSpec:
    field: str
    name: str
    role: Optional[str] = None


@dataclass(frozen=True)
class TableMeta:
    columns: tuple[ColumnSpec, ...]
    by_field: Mapping[str, ColumnSpec]
    by_column: Mapping[str, ColumnSpec]
    roles: Mapping[str, ColumnSpec]

    def role(self, role: str) -> ColumnSpec:
        return self.roles[role]

    @property
    def primary_key(self) -> ColumnSpec:
        return self.roles[PRIMARY_KEY]


@lru_cache(maxsize=None)
def _meta_for(record_type: type) -> TableMeta:
    if not dataclasses.is_dataclass(record_type):
        raise MappingError(f"{record_type.__name__} is not a dataclass")

    columns = []
    roles: dict[str, ColumnSpec] = {}
    seen: set[str] = set()
    for f in dataclasses.fields(record_type):
        name = f.metadata.get("column")
        if name is None:
            continue
        if name in seen:
            raise MappingError(f"{record_type.__name__}: column {name!r} declared twice")
        seen.add(name)
        spec = ColumnSpec(field=f.name, name=name, role=f.metadata.get("role"))
        if spec.role is not None:
            if spec.role in roles:
                raise MappingError(f"{record_type.__name__}: role {spec.role!r} declared twice")
            roles[spec.role] = spec
        columns.append(spec)

    missing = [r for r in REQUIRED_ROLES if r not in roles]
    if missing:
        raise MappingError(f"{record_type.__name__} is missing column roles: {', '.join(missing)}")

    return TableMeta(
        columns=tuple(columns),
        by_field={c.field: c for c in columns},
        by_column={c.name: c for c in columns},
        roles=roles,
    )


class Table:
    """Binding of a table name to a record type."""

    def __init__(self, name: str, record_type: type):
        self.name = name
        self.record_type = record_type
        self.meta = _meta_for(record_type)

    def __repr__(self) -> str:
        return f"Table({self.name!r}, {self.record_type.__name__})"

    @property
    def qualified(self) -> str:
        return quote(self.name)

    def column_for(self, field_name: str) -> ColumnSpec:
        try:
            return self.meta.by_field[field_name]
        except KeyError:
            raise MappingError(
                f"{self.record_type.__name__} has no mapped field {field_name!r}"
            ) from None

    def check_record(self, record: Any) -> None:
        if not isinstance(record, self.record_type):
            raise MappingError(
                f"table {self.name!r} expects {self.record_type.__name__}, "
                f"got {type(record).__name__}"
            )


def columns(table: Table) -> tuple[ColumnSpec, ...]:
    """Ordered (field, column, role) specs of the table's record type."""
    return table.meta.columns


# ── Filters ───────────────────────────────────────────────

@dataclass(frozen=True)
class Condition:
    field: str
    value: Any
    op: str = "="


@dataclass
class QueryFilter:
    """
    Conjunction of field conditions plus pagination.

    Soft-deleted rows are excluded unless ``include_deleted`` is set.
    Pagination applies only when both ``limit`` and ``page`` are non-zero.
    ``for_update`` locks the selected rows until the transaction ends.
    """
    conditions: list[Condition] = field(default_factory=list)
    include_deleted: bool = False
    limit: int = 0
    page: int = 0
    for_update: bool = False

    def where(self, field_name: str, value: Any, op: str = "=") -> "QueryFilter":
        op = op.upper()
        if op not in OPERATORS:
            raise MappingError(f"unsupported operator {op!r}")
        self.conditions.append(Condition(field_name, value, op))
        return self

    def paginate(self, limit: int, page: int) -> "QueryFilter":
        self.limit = limit
        self.page = page
        return self

    def with_deleted(self) -> "QueryFilter":
        self.include_deleted = True
        return self

    def locking(self) -> "QueryFilter":
        self.for_update = True
        return self

    @property
    def paginated(self) -> bool:
        return self.limit != 0 and self.page != 0


# ── Statement builders ────────────────────────────────────

def build_select(table: Table, flt: Optional[QueryFilter] = None) -> tuple[str, dict]:
    """SELECT with the soft-delete predicate, filter conditions and pagination."""
    flt = flt or QueryFilter()
    meta = table.meta
    predicates = []
    params: dict[str, Any] = {}

    if not flt.include_deleted:
        predicates.append(f"{quote(meta.role(DELETED_AT).name)} IS NULL")

    for i, cond in enumerate(flt.conditions):
        spec = table.column_for(cond.field)
        if cond.op not in OPERATORS:
            raise MappingError(f"unsupported operator {cond.op!r}")
        param = f"{cond.field}_{i}"
        predicates.append(f"{quote(spec.name)} {cond.op} %({param})s")
        params[param] = cond.value

    sql = f"SELECT * FROM {table.qualified}"
    if predicates:
        sql += " WHERE " + " AND ".join(predicates)
    sql += f" ORDER BY {quote(meta.primary_key.name)} DESC"

    if flt.paginated:
        sql += " LIMIT %(limit)s OFFSET %(offset)s"
        params["limit"] = flt.limit
        params["offset"] = (flt.page - 1) * flt.limit

    if flt.for_update:
        sql += " FOR UPDATE"

    return sql, params


def build_insert(table: Table, record: Any, now: datetime) -> tuple[str, dict]:
    """
    INSERT of every column except the primary key, RETURNING the new key.

    ``created_at`` and ``updated_at`` are bound to ``now``; the record itself
    is left untouched.
    """
    table.check_record(record)
    meta = table.meta
    stamped = {meta.role(CREATED_AT).name: now, meta.role(UPDATED_AT).name: now}

    cols = [c for c in meta.columns if c.role != PRIMARY_KEY]
    params = {c.name: stamped.get(c.name, getattr(record, c.field)) for c in cols}
    sql = (
        f"INSERT INTO {table.qualified} ({', '.join(quote(c.name) for c in cols)}) "
        f"VALUES ({', '.join(f'%({c.name})s' for c in cols)}) "
        f"RETURNING {quote(meta.primary_key.name)}"
    )
    return sql, params


def build_update(table: Table, record: Any, now: datetime) -> tuple[str, dict]:
    """UPDATE of every non-key column of a live row, keyed by primary key; binds ``updated_at`` to ``now``."""
    table.check_record(record)
    meta = table.meta
    pk = meta.primary_key
    pk_value = getattr(record, pk.field)
    if pk_value is None:
        raise MappingError(f"cannot update {table.record_type.__name__} without {pk.field}")
    updated = meta.role(UPDATED_AT).name

    cols = [c for c in meta.columns if c.role != PRIMARY_KEY]
    params = {c.name: now if c.name == updated else getattr(record, c.field) for c in cols}
    params["__pk"] = pk_value
    assignments = ", ".join(f"{quote(c.name)} = %({c.name})s" for c in cols)
    sql = (
        f"UPDATE {table.qualified} SET {assignments} "
        f"WHERE {quote(pk.name)} = %(__pk)s AND {quote(meta.role(DELETED_AT).name)} IS NULL"
    )
    return sql, params


def build_soft_delete(table: Table, record_id: int, now: datetime) -> tuple[str, dict]:
    """Mark a live row deleted instead of removing it."""
    meta = table.meta
    deleted = quote(meta.role(DELETED_AT).name)
    sql = (
        f"UPDATE {table.qualified} SET {deleted} = %(now)s, "
        f"{quote(meta.role(UPDATED_AT).name)} = %(now)s "
        f"WHERE {quote(meta.primary_key.name)} = %(__pk)s AND {deleted} IS NULL"
    )
    return sql, {"now": now, "__pk": record_id}


# ── Scanning ──────────────────────────────────────────────

def scan(table: Table, rows: Iterable[Mapping[str, Any]]) -> list:
    """Build a fresh record per row. Unmapped result columns are an error."""
    meta = table.meta
    records = []
    for row in rows:
        values = {}
        for name, value in row.items():
            spec = meta.by_column.get(name)
            if spec is None:
                raise MappingError(
                    f"column {name!r} of {table.name!r} has no field on {table.record_type.__name__}"
                )
            values[spec.field] = value
        records.append(_construct(table.record_type, values))
    return records


def _construct(record_type: type, values: dict) -> Any:
    init_values = {}
    post_values = {}
    for f in dataclasses.fields(record_type):
        if f.name not in values:
            continue
        if f.init:
            init_values[f.name] = values[f.name]
        else:
            post_values[f.name] = values[f.name]
    try:
        record = record_type(**init_values)
    except TypeError as e:
        raise MappingError(f"cannot build {record_type.__name__} from row: {e}") from e
    for name, value in post_values.items():
        setattr(record, name, value)
    return record
