"""Courier WhatsApp commands: presence, accepting offers, billing and completion."""
from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import (
    ConflictError,
    CourierUnavailableError,
    ExternalServiceError,
    OrderAlreadyTakenError,
    ValidationError,
)
from fulfillment.domain.types import CourierStatus, OrderStatus
from fulfillment.infra.database.models import Courier, Order
from fulfillment.infra.database.repositories import CourierRepository
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.dispatch_service import spawn_backfill
from fulfillment.services.order_service import OrderService
from fulfillment.services.presence_service import PresenceService
from fulfillment.utils import formatting
from fulfillment.utils.phones import normalize_phone

logger = logging.getLogger(__name__)

_APPROVE_WORDS = {"Y", "YA", "YES", "OK", "OKE", "SIP", "BENAR", "KIRIM"}
_AMOUNT_RE = re.compile(r"^(?:RP\.?\s*)?(\d[\d.,]{3,})$")
_DASHBOARD_COMMANDS = {"#INFO", "MENU", "PING", "#MENU", "#PING"}

NOT_REGISTERED = "Nomor ini belum terdaftar sebagai kurir. Ketik *#LOGIN <nomor terdaftar>*."


def parse_bill_amount(text: str) -> Optional[int]:
    """'25.500' / 'Rp 25500' -> 25500; short numbers are not treated as amounts."""
    match = _AMOUNT_RE.match(text.strip().upper())
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group(1))
    return int(digits) if len(digits) > 3 else None


def is_courier_command(text: str) -> bool:
    return (text or "").strip().upper().startswith("#LOGIN")


class CourierCommandService:
    def __init__(self, session: AsyncSession, deps: ServiceDeps) -> None:
        self._session = session
        self._deps = deps
        self._gateway = deps.gateway
        self._country_code = deps.config.default_country_code
        self._couriers = CourierRepository(session)
        self._orders = OrderService(session, clock=deps.clock, country_code=self._country_code)
        self._presence = PresenceService(session, deps.cache, clock=deps.clock)

    async def resolve_courier(self, sender: str) -> Optional[Courier]:
        """Match the WhatsApp sender to a courier by phone, then by bound device id."""
        phone = normalize_phone(sender, country_code=self._country_code)
        if phone is not None:
            courier = await self._couriers.get_by_phone(phone)
            if courier is not None:
                return courier
        return await self._couriers.get_by_device_id(sender)

    async def _notify_customer(self, order: Order, body: str) -> None:
        if not await self._gateway.send_text(order.customer_phone, body):
            logger.warning(
                "Customer update for %s not delivered", order.order_id,
                extra={"order_id": order.order_id, "phone": order.customer_phone},
            )

    # ── text ─────────────────────────────────────────────────────────────────

    async def handle_message(self, sender: str, text: str) -> str:
        text = (text or "").strip()
        upper = text.upper()
        if upper.startswith("#LOGIN"):
            return await self._login(sender, text[len("#LOGIN"):].strip())

        courier = await self.resolve_courier(sender)
        if courier is None:
            return NOT_REGISTERED
        if not courier.is_active or courier.status == CourierStatus.SUSPEND.value:
            return "Akun kurir kamu sedang dinonaktifkan. Hubungi admin."

        command, _, argument = upper.partition(" ")
        if command == "#SIAP":
            return await self._ready(courier)
        if command == "#OFF":
            return await self._off(courier)
        if command == "#AMBIL":
            return await self._accept(courier, argument.strip())
        if command == "#SELESAI":
            return await self._complete(courier)
        if upper in _DASHBOARD_COMMANDS:
            active = await self._orders.active_order_for_courier(courier.id)
            return formatting.courier_dashboard(courier, active)

        active = await self._orders.active_order_for_courier(courier.id)
        if active is not None and OrderStatus(active.status) is OrderStatus.BILL_VALIDATION:
            if upper in _APPROVE_WORDS:
                return await self._send_bill(active)
            amount = parse_bill_amount(text)
            if amount is not None:
                await self._orders.revise_bill_amount(active.order_id, amount)
                return (
                    f"Total diubah jadi *{formatting.format_idr(amount)}*. "
                    "Balas *Y* untuk kirim tagihan ke pelanggan."
                )
        return formatting.courier_dashboard(courier, active)

    async def _login(self, sender: str, raw_phone: str) -> str:
        phone = normalize_phone(raw_phone or sender, country_code=self._country_code)
        if phone is None:
            return "Format: *#LOGIN 08xxxxxxxxxx*"
        courier = await self._couriers.get_by_phone(phone)
        if courier is None:
            return NOT_REGISTERED
        courier.device_id = sender
        await self._session.commit()
        logger.info("Courier %s bound to device %s", courier.id, sender, extra={"courier_id": str(courier.id)})
        return f"Login berhasil, halo {courier.name or phone}! Ketik *#SIAP* untuk mulai menerima order."

    async def _ready(self, courier: Courier) -> str:
        courier = await self._presence.mark_online(courier.id)
        if not courier.has_coordinates:
            return "Status kamu *SIAP*. Kirim *live location* dulu supaya bisa dapat order terdekat."
        spawn_backfill(self._deps)
        return "Status kamu *SIAP* 🛵 Order terdekat akan langsung dikirim ke sini."

    async def _off(self, courier: Courier) -> str:
        if courier.status == CourierStatus.BUSY.value:
            return "Selesaikan order yang sedang berjalan dulu sebelum *#OFF*."
        await self._presence.mark_offline(courier.id)
        return "Status kamu *OFFLINE*. Terima kasih, hati-hati di jalan!"

    async def _accept(self, courier: Courier, reference: str) -> str:
        if not reference:
            return "Format: *#AMBIL <kode order>*"
        order = await self._orders.find_by_reference(reference)
        if order is None:
            return f"Order {reference} tidak ditemukan."
        order_id = order.order_id
        busy = courier.status == CourierStatus.BUSY.value
        try:
            order = await self._orders.assign(order_id, courier.id)
        except OrderAlreadyTakenError:
            await self._session.rollback()
            return f"Maaf, order {order_id} sudah tidak tersedia (sudah diambil kurir lain)."
        except CourierUnavailableError:
            await self._session.rollback()
            if busy:
                return "Kamu masih punya order yang berjalan. Selesaikan dulu ya."
            return "Kamu belum *#SIAP*. Ketik #SIAP dulu lalu ambil order lagi."

        await self._notify_customer(order, formatting.courier_assigned_message(order, courier))
        return (
            f"✅ Order {order_id} jadi milikmu.\n{formatting.item_lines(order.items)}\n\n"
            f"📍 Pickup: {order.pickup_address}\n🏠 Antar: {order.delivery_address}\n\n"
            "Setelah belanja, kirim *foto struk* di sini."
        )

    async def _send_bill(self, order: Order) -> str:
        finalized = await self._orders.finalize_bill(order.order_id)
        if finalized is None:
            return "Tagihan ini sudah dikirim."
        await self._notify_customer(finalized, formatting.bill_message(finalized))
        if finalized.evidence_ref:
            if not await self._gateway.send_image(finalized.customer_phone, finalized.evidence_ref, "Struk belanja"):
                logger.warning("Receipt image for %s not delivered", finalized.order_id, extra={"order_id": finalized.order_id})
        return "Tagihan sudah dikirim ke pelanggan. Setelah barang diterima, ketik *#SELESAI*."

    async def _complete(self, courier: Courier) -> str:
        active = await self._orders.active_order_for_courier(courier.id)
        if active is None:
            return "Tidak ada order yang sedang kamu kerjakan."
        if OrderStatus(active.status) is not OrderStatus.BILL_SENT:
            return "Kirim dan konfirmasi tagihan dulu (foto struk lalu balas *Y*) sebelum #SELESAI."
        order_id = active.order_id
        try:
            order = await self._orders.complete(order_id, courier.id)
        except ConflictError as exc:
            await self._session.rollback()
            logger.warning("Complete rejected for %s: %s", order_id, exc, extra={"order_id": order_id})
            return "Order ini tidak bisa diselesaikan. Hubungi admin."
        await self._notify_customer(order, formatting.completed_message(order))
        return f"Mantap! Order {order.order_id} selesai. Status kamu kembali *IDLE*."

    # ── media / location ─────────────────────────────────────────────────────

    async def handle_image(self, sender: str, media_ref: str) -> str:
        """A receipt photo while ON_PROCESS records the bill draft."""
        courier = await self.resolve_courier(sender)
        if courier is None:
            return NOT_REGISTERED
        active = await self._orders.active_order_for_courier(courier.id)
        if active is None or OrderStatus(active.status) is not OrderStatus.ON_PROCESS:
            return "Tidak ada order yang menunggu foto struk."
        reader = self._deps.receipt_reader
        if reader is None:
            return "Pembaca struk belum aktif. Ketik total belanja (contoh: 25000) setelah admin mengaktifkannya."
        try:
            amount = await reader.read_total(media_ref)
        except ExternalServiceError as exc:
            logger.warning("Receipt read failed for %s: %s", active.order_id, exc, extra={"order_id": active.order_id})
            return "Struk belum terbaca dengan jelas. Mohon kirim ulang fotonya ya."
        await self._orders.record_bill_draft(active.order_id, amount, media_ref)
        return (
            f"Total terbaca: *{formatting.format_idr(amount)}*.\n"
            "Balas *Y* untuk kirim ke pelanggan, atau ketik angka yang benar (contoh: 25500)."
        )

    async def handle_location(self, sender: str, latitude: float, longitude: float) -> str:
        courier = await self.resolve_courier(sender)
        if courier is None:
            return NOT_REGISTERED
        was_offline = courier.status == CourierStatus.OFFLINE.value
        try:
            courier = await self._presence.update_location(courier.id, latitude, longitude)
        except ValidationError:
            return "Lokasi tidak valid, coba kirim ulang."
        if was_offline and courier.is_active:
            await self._presence.mark_online(courier.id)
            spawn_backfill(self._deps)
            return "Lokasi diterima, status kamu sekarang *SIAP* 🛵"
        return "Lokasi kamu sudah diperbarui."
