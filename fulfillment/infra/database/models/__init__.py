"""
fulfillment.infra.database.models – SQLAlchemy 2.0 ORM models.

Exports Base, mixins, and all model classes.
"""
from fulfillment.infra.database.models.base import Base, TimestampMixin, _uuid_pk
from fulfillment.infra.database.models.courier import Courier
from fulfillment.infra.database.models.customer import Customer
from fulfillment.infra.database.models.order import Order

__all__ = [
    "Base",
    "TimestampMixin",
    "_uuid_pk",
    "Customer",
    "Courier",
    "Order",
]
