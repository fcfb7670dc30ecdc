"""
models/order_history.py
-----------------------
Domain model for placed orders.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from db.mapper import CREATED_AT, DELETED_AT, PRIMARY_KEY, UPDATED_AT, column


@dataclass
class OrderHistory:
    user_id: int = column("user_id")
    product_id: int = column("product_id")
    qty: int = column("qty")
    price: int = column("price")
    id: Optional[int] = column("id", role=PRIMARY_KEY, default=None)
    created_at: Optional[datetime] = column("created_at", role=CREATED_AT, default=None)
    updated_at: Optional[datetime] = column("updated_at", role=UPDATED_AT, default=None)
    deleted_at: Optional[datetime] = column("deleted_at", role=DELETED_AT, default=None)

    def __str__(self) -> str:
        return f"Order #{self.id}: {self.qty} x product {self.product_id} @ {self.price} (user {self.user_id})"


@dataclass
class FindAllOrderHistoryParams:
    page: int = 0
    limit: int = 0
    id: int = 0
    user_id: int = 0
    product_id: int = 0


@dataclass
class OrderParams:
    product_id: int
    qty: int
    price: int
