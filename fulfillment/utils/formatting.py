"""Outbound message text (Indonesian) for customers and couriers."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from fulfillment.domain.geo import maps_link
from fulfillment.domain.types import OrderStatus

if TYPE_CHECKING:
    from fulfillment.infra.database.models import Courier, Order

STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.DRAFT: "Draf (belum lengkap)",
    OrderStatus.PENDING_CONFIRMATION: "Menunggu konfirmasi kakak",
    OrderStatus.LOOKING_FOR_DRIVER: "Sedang mencari kurir",
    OrderStatus.ON_PROCESS: "Kurir sedang memproses pesanan",
    OrderStatus.BILL_VALIDATION: "Kurir sedang mengecek struk belanja",
    OrderStatus.BILL_SENT: "Tagihan sudah dikirim, kurir menuju lokasi antar",
    OrderStatus.COMPLETED: "Selesai",
    OrderStatus.CANCELLED: "Dibatalkan",
}

NO_PICKUP_COORDINATES = (
    "Pesanan kakak sudah kami terima, tapi kami belum bisa mencari kurir karena "
    "*titik lokasi pickup* belum ada. Kirim lokasi pickup lewat Clip (📎) -> Location ya kak."
)
NO_COURIER_AVAILABLE = (
    "Mohon maaf kak, saat ini semua kurir sedang sibuk. Pesanan kakak tetap kami "
    "antrikan dan akan langsung kami tawarkan ke kurir berikutnya 🙏"
)
AUTO_CANCELLED = (
    "Pesanan {order_id} kami batalkan otomatis karena tidak ada kelanjutan. "
    "Silakan pesan lagi kapan saja ya kak."
)
ADMIN_CANCELLED = "Pesanan {order_id} dibatalkan oleh admin. Alasan: {reason}"
ORDER_CONFIRMED = "Siap kak, pesanan {order_id} kami proses. Kami sedang carikan kurir terdekat 🛵"
REQUEST_FAILED = "Maaf kak, pesan ini belum bisa kami proses. Coba kirim ulang ya 🙏"
ORDER_CANCELLED_BY_CUSTOMER = "Oke kak, pesanan sudah kami batalkan."
NOTHING_TO_CANCEL = "Tidak ada pesanan aktif yang bisa dibatalkan kak."
CANNOT_CANCEL_TAKEN = "Pesanan kakak sudah diambil kurir, jadi tidak bisa dibatalkan lewat chat. Hubungi admin ya kak."
NO_ACTIVE_ORDER = "Kakak belum punya pesanan aktif. Mau pesan apa hari ini?"
GREETING = "Halo kak 👋 Mau titip beli apa? Sebutkan barang, lokasi beli (pickup) dan alamat antar ya."
DELIVERY_LOCATION_SAVED = (
    "Terima kasih, lokasi *alamat antar* sudah kami catat 😊\n\n"
    "Sekarang kirim juga *titik lokasi pickup* (tempat ambil pesanan) lewat Clip (📎) -> Location."
)
PICKUP_LOCATION_SAVED = (
    "Lokasi *pickup* sudah kami catat 😊\n\nBalas *OK* atau *Ya* untuk konfirmasi, "
    "nanti pesanan kami proses dan carikan kurir."
)
PICKUP_LOCATION_UPDATED = "Lokasi pickup sudah kami terima, kami langsung carikan kurir ya kak 🛵"

_FIELD_PROMPTS = {
    "items": "daftar barang yang mau dibeli",
    "pickup_address": "lokasi pickup (tempat beli/ambil)",
    "delivery_address": "alamat antar lengkap",
    "coordinates": "titik lokasi antar (Clip 📎 -> Location)",
}


def format_idr(amount: Optional[int]) -> str:
    """25000 -> 'Rp 25.000'."""
    return "Rp " + f"{int(amount or 0):,}".replace(",", ".")


def item_lines(items: Iterable[Dict[str, Any]]) -> str:
    lines = []
    for entry in items or []:
        line = f"- {entry.get('qty', 1)}x {entry.get('item', '')}"
        if entry.get("note"):
            line += f" ({entry['note']})"
        lines.append(line)
    return "\n".join(lines) or "-"


def status_label(status: "OrderStatus | str") -> str:
    return STATUS_LABELS.get(OrderStatus(status), str(status))


def missing_fields_message(fields: Iterable[str]) -> str:
    wanted = [_FIELD_PROMPTS.get(f, f) for f in fields]
    return "Pesanan belum lengkap kak. Mohon lengkapi: " + ", ".join(wanted) + "."


def draft_summary(
    items: Iterable[Dict[str, Any]],
    pickup: Optional[str],
    delivery_address: Optional[str],
    notes: Optional[str] = None,
) -> str:
    text = (
        "*Ringkasan pesanan*\n"
        f"{item_lines(items)}\n\n"
        f"📍 Pickup: {pickup or '-'}\n"
        f"🏠 Antar ke: {delivery_address or '-'}"
    )
    if notes:
        text += f"\n📝 Catatan: {notes}"
    return text + "\n\nBalas *OK* atau *Ya* kalau sudah benar."


def offer_message(order: "Order", distance_km: float) -> str:
    """Offer text sent to a courier; accepting means replying #AMBIL <code>."""
    reference = order.short_code or order.order_id
    text = (
        f"🛵 *ORDER BARU* {order.order_id}\n"
        f"Jarak ke pickup: {distance_km:.1f} km\n\n"
        f"{item_lines(order.items)}\n\n"
        f"📍 Pickup: {order.pickup_address or '-'}\n"
        f"🏠 Antar: {order.delivery_address or '-'}"
    )
    if order.notes:
        text += f"\n📝 {order.notes}"
    if order.pickup_latitude is not None and order.pickup_longitude is not None:
        text += f"\nPeta pickup: {maps_link(order.pickup_latitude, order.pickup_longitude)}"
    if order.delivery_latitude is not None and order.delivery_longitude is not None:
        text += f"\nPeta tujuan: {maps_link(order.delivery_latitude, order.delivery_longitude)}"
    return text + f"\n\nBalas *#AMBIL {reference}* untuk mengambil order ini."


def courier_assigned_message(order: "Order", courier: "Courier") -> str:
    return (
        f"Kurir *{courier.name or courier.phone}* ({courier.phone}) sudah mengambil pesanan "
        f"{order.order_id} dan sedang menuju lokasi pickup 🛵"
    )


def bill_message(order: "Order") -> str:
    return (
        f"🧾 Tagihan pesanan {order.order_id}\n"
        f"{item_lines(order.items)}\n\n"
        f"Total belanja: *{format_idr(order.total_amount)}*\n"
        "Kurir sedang menuju alamat antar kakak."
    )


def completed_message(order: "Order") -> str:
    return f"Pesanan {order.order_id} sudah selesai diantar. Terima kasih sudah memesan kak 🙏"


def courier_dashboard(courier: "Courier", active: Optional["Order"]) -> str:
    text = (
        f"👤 {courier.name or courier.phone}\n"
        f"Status: *{courier.status}* | Shift {courier.shift_code}\n"
    )
    if active is not None:
        text += f"Order aktif: {active.order_id} ({status_label(active.status)})\n"
    return text + (
        "\nPerintah:\n#SIAP - mulai terima order\n#OFF - berhenti\n"
        "#AMBIL <kode> - ambil order\n#SELESAI - order sudah diantar"
    )
