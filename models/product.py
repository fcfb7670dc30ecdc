"""
models/product.py
-----------------
Domain model for catalogue products.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from db.mapper import CREATED_AT, DELETED_AT, PRIMARY_KEY, UPDATED_AT, column


@dataclass
class Product:
    """
    Represents a product for sale.

    Attributes:
        name: Product name, unique among live products.
        qty: Units in stock.
        price: Unit price in the smallest currency unit.
        id: Database primary key (None for new records).
        created_at / updated_at / deleted_at: Row timestamps.
    """
    name: str = column("name")
    qty: int = column("qty", default=0)
    price: int = column("price", default=0)
    id: Optional[int] = column("id", role=PRIMARY_KEY, default=None)
    created_at: Optional[datetime] = column("created_at", role=CREATED_AT, default=None)
    updated_at: Optional[datetime] = column("updated_at", role=UPDATED_AT, default=None)
    deleted_at: Optional[datetime] = column("deleted_at", role=DELETED_AT, default=None)

    def in_stock(self, qty: int) -> bool:
        """Returns True if ``qty`` units can be ordered."""
        return self.qty >= qty


@dataclass
class FindAllProductsParams:
    page: int = 0
    limit: int = 0
    search: str = ""
    product_id: int = 0
    name: str = ""


@dataclass
class ProductParams:
    """Create/update payload. A blank name on update keeps the current one."""
    name: str = ""
    qty: int = 0
    price: int = 0
