"""
fulfillment.infra.database – PostgreSQL async engine, session, models and repositories.

Public API
──────────
  build_engine, build_session_factory, init_db, ensure_database_exists, close_engine
  Base, Customer, Courier, Order (models)
  BaseRepository, OrderRepository, CourierRepository, CustomerRepository
"""
from fulfillment.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from fulfillment.infra.database.models import Base, Courier, Customer, Order
from fulfillment.infra.database.repositories import (
    BaseRepository,
    CourierRepository,
    CustomerRepository,
    OrderRepository,
)

__all__ = [
    "build_engine",
    "build_session_factory",
    "init_db",
    "ensure_database_exists",
    "close_engine",
    "Base",
    "Customer",
    "Courier",
    "Order",
    "BaseRepository",
    "OrderRepository",
    "CourierRepository",
    "CustomerRepository",
]
