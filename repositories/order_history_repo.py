"""
repositories/order_history_repo.py
-----------------------------------
Data access layer for order history rows.
"""

from typing import Optional

from db.context import ExecutionContext
from db.errors import AppError
from db.mapper import QueryFilter, Table
from db.storage import GenericStorage
from models.order_history import FindAllOrderHistoryParams, OrderHistory

ORDER_HISTORIES = Table("order_histories", OrderHistory)


class OrderHistoryRepository:
    """Repository for CRUD operations on the order_histories table."""

    def __init__(self, storage: Optional[GenericStorage] = None):
        self.storage = storage or GenericStorage(ORDER_HISTORIES)

    def find_all(self, ctx: ExecutionContext, params: FindAllOrderHistoryParams) -> list[OrderHistory]:
        flt = QueryFilter()
        if params.id:
            flt.where("id", params.id)
        if params.user_id:
            flt.where("user_id", params.user_id)
        if params.product_id:
            flt.where("product_id", params.product_id)
        flt.paginate(params.limit, params.page)
        return self.storage.where(ctx, flt)

    def find_by_id(self, ctx: ExecutionContext, order_id: int) -> OrderHistory:
        orders = self.find_all(ctx, FindAllOrderHistoryParams(id=order_id))
        if not orders or orders[0].id != order_id:
            raise AppError.not_found("OrderHistoryRepository.find_by_id", f"order #{order_id} not found")
        return orders[0]

    def insert(self, ctx: ExecutionContext, order: OrderHistory) -> OrderHistory:
        return self.storage.insert(ctx, order)

    def update(self, ctx: ExecutionContext, order: OrderHistory) -> OrderHistory:
        return self.storage.update(ctx, order)

    def delete(self, ctx: ExecutionContext, order_id: int) -> None:
        self.storage.delete(ctx, order_id)
