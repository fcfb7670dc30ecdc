"""
repositories/product_repo.py
-----------------------------
Data access layer for products.
All queries related to the `products` table live here.
"""

from typing import Optional

from db.context import ExecutionContext
from db.errors import AppError
from db.mapper import QueryFilter, Table, escape_like
from db.storage import GenericStorage
from models.product import FindAllProductsParams, Product

PRODUCTS = Table("products", Product)


class ProductRepository:
    """Repository for CRUD operations on the products table."""

    def __init__(self, storage: Optional[GenericStorage] = None):
        self.storage = storage or GenericStorage(PRODUCTS)

    def find_all(self, ctx: ExecutionContext, params: FindAllProductsParams) -> list[Product]:
        """List live products by id, exact name, or name substring."""
        flt = QueryFilter()
        if params.product_id:
            flt.where("id", params.product_id)
        if params.name:
            flt.where("name", params.name)
        if params.search:
            flt.where("name", f"%{escape_like(params.search)}%", "ILIKE")
        flt.paginate(params.limit, params.page)
        return self.storage.where(ctx, flt)

    def find_by_id(self, ctx: ExecutionContext, product_id: int, for_update: bool = False) -> Product:
        """
        Fetch a live product by id.

        Args:
            for_update: Lock the row until the enclosing transaction ends.

        Raises:
            AppError: NOT_FOUND if there is no such live product.
        """
        flt = QueryFilter().where("id", product_id)
        if for_update:
            flt.locking()
        products = self.storage.where(ctx, flt)
        if not products or products[0].id != product_id:
            raise AppError.not_found("ProductRepository.find_by_id", f"product #{product_id} not found")
        return products[0]

    def insert(self, ctx: ExecutionContext, product: Product) -> Product:
        return self.storage.insert(ctx, product)

    def update(self, ctx: ExecutionContext, product: Product) -> Product:
        return self.storage.update(ctx, product)

    def delete(self, ctx: ExecutionContext, product_id: int) -> None:
        self.storage.delete(ctx, product_id)
