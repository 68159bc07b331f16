"""Customer message -> (intent, extracted order fields, reply text)."""
from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from fulfillment.domain.types import Intent, ParsedMessage, normalize_items

if TYPE_CHECKING:
    from fulfillment.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)

_CONFIRM_WORDS = {"ok", "oke", "okey", "okay", "ya", "y", "iya", "yes", "siap", "lanjut", "gas", "setuju", "benar"}
_CANCEL_WORDS = {"batal", "cancel", "gak jadi", "ga jadi", "tidak jadi", "batalkan"}
_STATUS_WORDS = {"status", "cek pesanan", "cek order", "posisi kurir", "sudah sampai mana"}

_PARSE_PROMPT = """\
Kamu adalah asisten pemesanan jasa antar (titip beli) via WhatsApp.
Baca pesan pelanggan dan kembalikan HANYA satu objek JSON (tanpa markdown):

{{"intent": "<ORDER_INCOMPLETE|ORDER_COMPLETE|CONFIRM_FINAL|CHECK_STATUS|CANCEL|CHITCHAT>",
  "fields": {{"items": [{{"item": "<nama>", "qty": <angka>, "note": "<catatan>"}}],
             "pickup_location": "<tempat beli/ambil>",
             "delivery_address": "<alamat antar>",
             "notes": "<catatan umum>"}},
  "reply_text": "<balasan singkat yang ramah untuk pelanggan>"}}

Aturan:
- Isi "fields" hanya dengan data yang disebut di pesan ini; hilangkan kunci yang tidak disebut.
- ORDER_COMPLETE bila barang, lokasi pickup dan alamat antar sudah lengkap (gabungan draf + pesan ini).
- CONFIRM_FINAL hanya bila pelanggan menyetujui ringkasan pesanan.

Status pesanan saat ini: {status}
Draf saat ini: {draft}

Pesan pelanggan: "{text}"
"""


class IntentParser(ABC):
    """Contract: ``parse(text, context)`` never raises for ordinary input."""

    @abstractmethod
    async def parse(self, text: str, *, context: Optional[Dict[str, Any]] = None) -> ParsedMessage:
        ...


def quick_intent(text: str, *, has_pending_draft: bool = False) -> Optional[Intent]:
    """Keyword shortcut for the unambiguous replies; None hands off to the LLM."""
    lowered = re.sub(r"[^\w\s]", " ", (text or "").lower()).strip()
    lowered = re.sub(r"\s+", " ", lowered)
    if not lowered:
        return None
    if lowered in _CANCEL_WORDS or any(lowered.startswith(w + " ") for w in _CANCEL_WORDS):
        return Intent.CANCEL
    if lowered in _STATUS_WORDS:
        return Intent.CHECK_STATUS
    if has_pending_draft and lowered in _CONFIRM_WORDS:
        return Intent.CONFIRM_FINAL
    return None


class LLMIntentParser(IntentParser):
    """Keyword shortcut first, then a JSON-answering LLM prompt."""

    def __init__(self, llm: "BaseLLMClient", *, timeout_seconds: Optional[float] = 20.0) -> None:
        self._llm = llm
        self._timeout = timeout_seconds

    async def parse(self, text: str, *, context: Optional[Dict[str, Any]] = None) -> ParsedMessage:
        context = context or {}
        shortcut = quick_intent(text, has_pending_draft=bool(context.get("draft_complete")))
        if shortcut is not None:
            logger.debug("LLMIntentParser: keyword match -> %s", shortcut.value)
            return ParsedMessage(intent=shortcut)

        prompt = _PARSE_PROMPT.format(
            status=context.get("status") or "NONE",
            draft=json.dumps(context.get("draft") or {}, ensure_ascii=False),
            text=text.replace('"', "'"),
        )
        try:
            coro = self._llm.complete(prompt)
            if self._timeout:
                coro = asyncio.wait_for(coro, timeout=self._timeout)
            raw = await coro
        except asyncio.TimeoutError:
            logger.warning("LLMIntentParser: parse timed out (%.0fs)", self._timeout or 0)
            return ParsedMessage(intent=Intent.CHITCHAT)
        except Exception as exc:
            logger.error("LLMIntentParser: parse failed: %s", exc)
            return ParsedMessage(intent=Intent.CHITCHAT)
        return self._parse(raw)

    @staticmethod
    def _parse(raw: str) -> ParsedMessage:
        candidate = (raw or "").strip()
        if candidate.startswith("```"):
            candidate = "\n".join(
                line for line in candidate.splitlines() if not line.strip().startswith("```")
            ).strip()
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            match = re.search(r"\{.*\}", candidate, re.DOTALL)
            data = None
            if match:
                try:
                    data = json.loads(match.group())
                except json.JSONDecodeError:
                    data = None
        if not isinstance(data, dict):
            logger.warning("LLMIntentParser: could not parse JSON from: %s", (raw or "")[:300])
            return ParsedMessage(intent=Intent.CHITCHAT)

        raw_fields = data.get("fields") if isinstance(data.get("fields"), dict) else {}
        fields: Dict[str, Any] = {}
        items = normalize_items(raw_fields.get("items"))
        if items:
            fields["items"] = items
        for key in ("pickup_location", "delivery_address", "notes"):
            value = raw_fields.get(key)
            if isinstance(value, str) and value.strip():
                fields[key] = value.strip()
        return ParsedMessage(
            intent=Intent.parse(data.get("intent")),
            fields=fields,
            reply_text=str(data.get("reply_text") or "").strip(),
        )
