"""
Generic storage façade tests against a recording fake connection.
"""

from datetime import datetime, timezone

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from db.errors import AppError, ErrorKind, MappingError
from db.executor import TransactionExecutor
from db.mapper import QueryFilter, Table
from db.storage import GenericStorage
from models.product import Product

NOW = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)


@pytest.fixture()
def storage(resolver):
    return GenericStorage(Table("products", Product), resolver=resolver, clock=lambda: NOW)


def _row(pid, name, qty=1, price=100):
    return {"id": pid, "name": name, "qty": qty, "price": price,
            "created_at": NOW, "updated_at": NOW, "deleted_at": None}


def test_where_scans_rows(storage, conn, ctx):
    conn.queue(rows=[_row(2, "Teh"), _row(1, "Kopi")])
    products = storage.where(ctx, QueryFilter().where("name", "Kopi"))
    assert [p.name for p in products] == ["Teh", "Kopi"]
    assert conn.sql[0].startswith('SELECT * FROM "products" WHERE "deleted_at" IS NULL')


def test_where_without_rows_returns_empty_list(storage, ctx):
    assert storage.where(ctx) == []


def test_where_with_unknown_field_never_reaches_database(storage, conn, ctx):
    with pytest.raises(MappingError):
        storage.where(ctx, QueryFilter().where("sku", "X"))
    assert conn.statements == []


def test_insert_populates_generated_id(storage, conn, ctx):
    conn.queue(rows=[{"id": 41}])
    product = storage.insert(ctx, Product(name="Kopi", qty=3, price=1500))
    assert product.id == 41
    assert product.created_at == NOW
    assert product.updated_at == NOW
    assert conn.commits == 1


def test_insert_without_returned_id_is_a_storage_fault(storage, conn, ctx):
    conn.queue(rows=[])
    with pytest.raises(AppError) as exc:
        storage.insert(ctx, Product(name="Kopi"))
    assert exc.value.kind is ErrorKind.STORAGE_FAULT


def test_update_of_missing_row_is_not_found(storage, conn, ctx):
    conn.queue(rowcount=0)
    with pytest.raises(AppError) as exc:
        storage.update(ctx, Product(name="Kopi", id=404))
    assert exc.value.kind is ErrorKind.NOT_FOUND
    assert exc.value.path == "GenericStorage(products).update"


def test_update_returns_record_with_fresh_timestamp(storage, conn, ctx):
    conn.queue(rowcount=1)
    product = storage.update(ctx, Product(name="Kopi", id=1))
    assert product.updated_at == NOW


def test_delete_is_soft(storage, conn, ctx):
    conn.queue(rowcount=1)
    storage.delete(ctx, 3)
    assert conn.sql[0].startswith('UPDATE "products" SET "deleted_at"')
    assert not any(s.startswith("DELETE") for s in conn.sql)


def test_delete_of_missing_row_is_not_found(storage, conn, ctx):
    conn.queue(rowcount=0)
    with pytest.raises(AppError) as exc:
        storage.delete(ctx, 3)
    assert exc.value.kind is ErrorKind.NOT_FOUND


def test_driver_error_is_wrapped_with_cause(storage, conn, ctx):
    cause = psycopg2.ProgrammingError('relation "products" does not exist')
    conn.fail(cause)
    with pytest.raises(AppError) as exc:
        storage.where(ctx)
    assert exc.value.kind is ErrorKind.STORAGE_FAULT
    assert exc.value.__cause__ is cause
    assert "does not exist" in exc.value.message


def test_unique_violation_maps_to_already_exists(storage, conn, ctx):
    conn.fail(pg_errors.UniqueViolation("duplicate key value violates unique constraint"))
    with pytest.raises(AppError) as exc:
        storage.insert(ctx, Product(name="Kopi"))
    assert exc.value.kind is ErrorKind.ALREADY_EXISTS


def test_query_cancelled_by_context_maps_to_cancelled(storage, conn, ctx):
    ctx.cancel("request aborted")
    conn.fail(psycopg2.extensions.QueryCanceledError("canceling statement"))
    # The context is checked before the statement runs.
    with pytest.raises(AppError) as exc:
        storage.where(ctx)
    assert exc.value.kind is ErrorKind.CANCELLED


def test_statements_join_the_context_transaction(storage, pool, ctx):
    tx_conn = type(pool.conn)()
    tx_conn.queue(rows=[{"id": 8}])
    tx = TransactionExecutor(tx_conn)
    storage.insert(ctx.with_transaction(tx), Product(name="Kopi"))
    assert pool.acquired == 0
    assert tx_conn.sql[0].startswith('INSERT INTO "products"')
    assert tx_conn.commits == 0


def test_failed_insert_leaves_record_untouched(storage, conn, ctx):
    conn.fail(pg_errors.UniqueViolation("duplicate key value violates unique constraint"))
    product = Product(name="Kopi")
    with pytest.raises(AppError):
        storage.insert(ctx, product)
    assert product.id is None
    assert product.created_at is None and product.updated_at is None


def test_failed_update_keeps_previous_timestamp(storage, conn, ctx):
    earlier = datetime(2020, 1, 1, tzinfo=timezone.utc)
    product = Product(name="Kopi", id=404, created_at=earlier, updated_at=earlier)
    conn.queue(rowcount=0)
    with pytest.raises(AppError):
        storage.update(ctx, product)
    assert product.updated_at == earlier
