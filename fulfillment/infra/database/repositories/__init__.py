"""Repositories for the fulfillment database."""
from fulfillment.infra.database.repositories.base import BaseRepository
from fulfillment.infra.database.repositories.courier import CourierRepository
from fulfillment.infra.database.repositories.customer import CustomerRepository
from fulfillment.infra.database.repositories.order import OrderRepository

__all__ = [
    "BaseRepository",
    "OrderRepository",
    "CourierRepository",
    "CustomerRepository",
]
