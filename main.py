"""
main.py
-------
Entry point for the shopdb storage backend.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Wire repositories, the transaction manager and the domain services.
    - Run a read-only startup check through the services.

The HTTP layer imports ``build_services()`` and creates one
``ExecutionContext`` per inbound request.
"""

from dataclasses import dataclass

from db.connection import close_pool, init_pool
from db.context import ExecutionContext
from db.init_db import create_tables
from db.transaction import TransactionManager
from models.product import FindAllProductsParams
from models.user import FindAllUsersParams
from repositories.order_history_repo import OrderHistoryRepository
from repositories.product_repo import ProductRepository
from repositories.user_repo import UserRepository
from services.product_service import ProductService
from services.user_service import UserService
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class InternalServices:
    """All domain services, sharing one transaction manager."""
    user_service: UserService
    product_service: ProductService
    tx: TransactionManager


def build_services() -> InternalServices:
    """Wire repositories and services on top of the shared pool."""
    tx = TransactionManager()
    return InternalServices(
        user_service=UserService(repo=UserRepository(), tx=tx),
        product_service=ProductService(
            product_repo=ProductRepository(),
            order_repo=OrderHistoryRepository(),
            tx=tx,
        ),
        tx=tx,
    )


def main() -> None:
    """Initialize the database, build the services and report readiness."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    try:
        create_tables()

        # ── 2. Wire services ──────────────────────────────
        services = build_services()

        # ── 3. Startup check ──────────────────────────────
        ctx = ExecutionContext.new()
        _, users = services.user_service.list_users(ctx, FindAllUsersParams())
        _, products = services.product_service.list_products(ctx, FindAllProductsParams())
        logger.info(f"shopdb ready: {users} users, {products} products.")
    finally:
        # ── 4. Cleanup ────────────────────────────────────
        close_pool()


if __name__ == "__main__":
    main()
