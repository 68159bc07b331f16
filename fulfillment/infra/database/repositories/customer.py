"""Customer repository."""
from __future__ import annotations

from typing import Optional

from fulfillment.infra.database.models.customer import Customer
from fulfillment.infra.database.repositories.base import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    model = Customer

    async def get_or_create(self, phone: str, *, name: Optional[str] = None) -> Customer:
        customer = await self.get_by_id(phone)
        if customer is not None:
            return customer
        return await self.create({"phone": phone, "name": name})

    async def update_location(
        self,
        phone: str,
        latitude: float,
        longitude: float,
        *,
        address_text: Optional[str] = None,
    ) -> Customer:
        customer = await self.get_or_create(phone)
        customer.latitude = latitude
        customer.longitude = longitude
        if address_text:
            customer.address_text = address_text
        await self.session.flush()
        return customer
