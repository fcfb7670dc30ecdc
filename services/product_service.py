"""
services/product_service.py
----------------------------
Business logic for the product catalogue and for placing orders.
"""

from dataclasses import replace
from typing import Optional

from db.context import ExecutionContext
from db.errors import AppError
from db.transaction import TransactionManager
from models.order_history import FindAllOrderHistoryParams, OrderHistory, OrderParams
from models.product import FindAllProductsParams, Product, ProductParams
from repositories.order_history_repo import OrderHistoryRepository
from repositories.product_repo import ProductRepository
from utils.logger import get_logger

logger = get_logger(__name__)

ERR_PRODUCT_ALREADY_EXISTS = "Product Already Exists"
ERR_PRODUCT_UNAVAILABLE = "Product Unavailable"


class ProductService:
    """
    Handles products and orders.

    Workflow for an order:
        1. Lock the product row.
        2. Check stock.
        3. Decrement stock via update_product.
        4. Record the order.
    All four steps share one transaction; update_product's own
    transaction call joins it instead of opening a second one.
    """

    def __init__(self, product_repo: Optional[ProductRepository] = None,
                 order_repo: Optional[OrderHistoryRepository] = None,
                 tx: Optional[TransactionManager] = None):
        self.product_repo = product_repo or ProductRepository()
        self.order_repo = order_repo or OrderHistoryRepository()
        self.tx = tx or TransactionManager()

    # ── Products ──────────────────────────────────────────

    def list_products(self, ctx: ExecutionContext,
                      params: FindAllProductsParams) -> tuple[list[Product], int]:
        """
        List products for one page.

        Returns:
            (products on the requested page, total number of matching products).
        """
        products = self.product_repo.find_all(ctx, params)
        all_products = self.product_repo.find_all(ctx, replace(params, page=0, limit=0))
        return products, len(all_products)

    def get_product(self, ctx: ExecutionContext, product_id: int) -> Product:
        return self.product_repo.find_by_id(ctx, product_id)

    def create_product(self, ctx: ExecutionContext, params: ProductParams) -> Product:
        """
        Add a product to the catalogue.

        Raises:
            AppError: ALREADY_EXISTS if a live product has the same name.
        """
        def _create(tx_ctx: ExecutionContext) -> Product:
            self._ensure_name_free(tx_ctx, params.name, "ProductService.create_product")
            product = Product(name=params.name, qty=params.qty, price=params.price)
            return self.product_repo.insert(tx_ctx, product)

        product = self.tx.run_in_transaction(ctx, _create)
        logger.info(f"[{ctx.request_id}] Created product #{product.id} '{product.name}'")
        return product

    def update_product(self, ctx: ExecutionContext, product_id: int, params: ProductParams) -> Product:
        """
        Replace a product's stock and price, and its name when one is given.

        Raises:
            AppError: NOT_FOUND for an unknown product, ALREADY_EXISTS if the
                new name belongs to another live product.
        """
        def _update(tx_ctx: ExecutionContext) -> Product:
            product = self.product_repo.find_by_id(tx_ctx, product_id)
            if params.name and params.name != product.name:
                self._ensure_name_free(tx_ctx, params.name, "ProductService.update_product",
                                       exclude_id=product_id)
                product.name = params.name
            product.qty = params.qty
            product.price = params.price
            return self.product_repo.update(tx_ctx, product)

        return self.tx.run_in_transaction(ctx, _update)

    def delete_product(self, ctx: ExecutionContext, product_id: int) -> None:
        self.tx.run_in_transaction(ctx, lambda tx_ctx: self.product_repo.delete(tx_ctx, product_id))
        logger.info(f"[{ctx.request_id}] Deleted product #{product_id}")

    # ── Orders ────────────────────────────────────────────

    def create_order(self, ctx: ExecutionContext, params: OrderParams) -> OrderHistory:
        """
        Place an order for the context's user.

        Raises:
            AppError: VALIDATION if there is no user, the quantity is not
                positive or stock is short; NOT_FOUND for an unknown product.
        """
        path = "ProductService.create_order"
        if ctx.user_id is None:
            raise AppError.validation(path, "order requires an authenticated user")
        if params.qty <= 0:
            raise AppError.validation(path, "quantity must be positive")

        def _place(tx_ctx: ExecutionContext) -> OrderHistory:
            product = self.product_repo.find_by_id(tx_ctx, params.product_id, for_update=True)
            if not product.in_stock(params.qty):
                raise AppError.validation(path, ERR_PRODUCT_UNAVAILABLE)

            self.update_product(tx_ctx, product.id, ProductParams(
                qty=product.qty - params.qty,
                price=product.price,
            ))

            # Payment would be captured here.

            order = OrderHistory(
                user_id=tx_ctx.user_id,
                product_id=product.id,
                qty=params.qty,
                price=params.price,
            )
            return self.order_repo.insert(tx_ctx, order)

        order = self.tx.run_in_transaction(ctx, _place)
        logger.info(f"[{ctx.request_id}] {order}")
        return order

    def get_order(self, ctx: ExecutionContext, order_id: int) -> OrderHistory:
        return self.order_repo.find_by_id(ctx, order_id)

    def list_orders(self, ctx: ExecutionContext,
                    params: FindAllOrderHistoryParams) -> tuple[list[OrderHistory], int]:
        orders = self.order_repo.find_all(ctx, params)
        all_orders = self.order_repo.find_all(ctx, replace(params, page=0, limit=0))
        return orders, len(all_orders)

    def _ensure_name_free(self, ctx: ExecutionContext, name: str, path: str,
                          exclude_id: Optional[int] = None) -> None:
        if not name:
            return
        products = self.product_repo.find_all(ctx, FindAllProductsParams(name=name))
        if any(p.id != exclude_id for p in products):
            raise AppError.already_exists(path, ERR_PRODUCT_ALREADY_EXISTS)
