"""Public WhatsApp webhook: Meta verification handshake and inbound messages.

This route lives under /webhooks/ (not /api/v1/); Meta does not know any
internal admin key. Processing is offloaded to a background task so the
handler acks with HTTP 200 immediately (WhatsApp must be acked within 20 s).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from fulfillment.core.exceptions import ProjectError
from fulfillment.services.courier_service import CourierCommandService, is_courier_command
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.dispatch_service import spawn_background
from fulfillment.services.draft_service import DraftAssembler
from fulfillment.utils import formatting
from fulfillment.utils.phones import normalize_phone

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

CUSTOMER_IMAGE_REPLY = "Maaf, kirim pesanan dalam bentuk teks ya 🙏"


@dataclass
class InboundMessage:
    sender: str
    kind: str  # text | location | image
    text: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    media_id: Optional[str] = None


def parse_inbound(body: Dict[str, Any]) -> List[InboundMessage]:
    """Flatten a Cloud API webhook payload into the messages we handle."""
    parsed: List[InboundMessage] = []
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            for msg in (change.get("value") or {}).get("messages") or []:
                sender = msg.get("from")
                kind = msg.get("type")
                if not sender:
                    continue
                if kind == "text":
                    parsed.append(InboundMessage(sender, "text", text=(msg.get("text") or {}).get("body", "")))
                elif kind == "location":
                    loc = msg.get("location") or {}
                    try:
                        lat, lng = float(loc["latitude"]), float(loc["longitude"])
                    except (KeyError, TypeError, ValueError):
                        logger.warning("webhooks: location without coordinates from %s", sender)
                        continue
                    parsed.append(InboundMessage(
                        sender, "location", latitude=lat, longitude=lng,
                        address=loc.get("address") or loc.get("name"),
                    ))
                elif kind == "image":
                    image = msg.get("image") or {}
                    parsed.append(InboundMessage(
                        sender, "image", text=image.get("caption", ""), media_id=image.get("id"),
                    ))
                else:
                    logger.debug("webhooks: ignoring %s message from %s", kind, sender)
    return parsed


async def handle_inbound(deps: ServiceDeps, message: InboundMessage) -> Optional[str]:
    """Route one message to the courier or customer flow and send the reply.

    A rejected message (``ProjectError``) still gets a short apology; anything
    else is logged and left unanswered.
    """
    recipient = normalize_phone(message.sender, country_code=deps.config.default_country_code) or message.sender
    reply: Optional[str] = None
    try:
        async with deps.session_factory() as session:
            couriers = CourierCommandService(session, deps)
            courier = await couriers.resolve_courier(message.sender)
            if courier is not None or (message.kind == "text" and is_courier_command(message.text)):
                if message.kind == "text":
                    reply = await couriers.handle_message(message.sender, message.text)
                elif message.kind == "location":
                    reply = await couriers.handle_location(message.sender, message.latitude, message.longitude)
                elif message.kind == "image" and message.media_id:
                    reply = await couriers.handle_image(message.sender, message.media_id)
            else:
                customers = DraftAssembler(session, deps)
                if message.kind == "text":
                    reply = await customers.handle_message(message.sender, message.text)
                elif message.kind == "location":
                    reply = await customers.handle_location(
                        message.sender, message.latitude, message.longitude, address_text=message.address
                    )
                else:
                    reply = CUSTOMER_IMAGE_REPLY
    except ProjectError as exc:
        logger.warning(
            "webhooks: %s from %s rejected: %s", message.kind, message.sender, exc,
            extra={"phone": recipient},
        )
        reply = formatting.REQUEST_FAILED
    except Exception:
        logger.exception("webhooks: error processing %s message from %s", message.kind, message.sender)
        return None

    if reply:
        if not await deps.gateway.send_text(recipient, reply):
            logger.warning("webhooks: reply to %s not delivered", recipient)
    return reply


# ── verification ─────────────────────────────────────────────────────────────

@router.get("/whatsapp")
async def whatsapp_verify(request: Request):
    """Meta webhook verification handshake."""
    verify_token = os.environ.get("WHATSAPP_VERIFY_TOKEN", "").strip()
    if not verify_token:
        return JSONResponse(status_code=403, content={"detail": "WHATSAPP_VERIFY_TOKEN not configured"})

    params = request.query_params
    if params.get("hub.mode") == "subscribe" and params.get("hub.verify_token") == verify_token:
        logger.info("webhooks: WhatsApp verification succeeded")
        return PlainTextResponse(params.get("hub.challenge") or "")

    logger.warning("webhooks: WhatsApp verification failed (token mismatch or wrong mode)")
    return JSONResponse(status_code=403, content={"detail": "Verification failed"})


# ── inbound ──────────────────────────────────────────────────────────────────

@router.post("/whatsapp")
async def whatsapp_inbound(request: Request):
    """Receive WhatsApp Business messages from Meta Cloud API."""
    try:
        body: Dict[str, Any] = await request.json()
    except ValueError:
        return Response(status_code=200)  # ack even on bad JSON
    if not isinstance(body, dict):
        return Response(status_code=200)

    deps: ServiceDeps = request.app.state.deps
    for message in parse_inbound(body):
        spawn_background(handle_inbound(deps, message), f"inbound:{message.sender}")
    return Response(status_code=200)
