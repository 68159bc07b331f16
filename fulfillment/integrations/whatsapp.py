"""WhatsApp Business (Meta Cloud API) gateway: outbound text/image and media download."""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import httpx

from fulfillment.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

_GRAPH_BASE = "https://graph.facebook.com/v21.0"
_MAX_MESSAGE_LEN = 4096


def _chunks(text: str) -> List[str]:
    return [text[i : i + _MAX_MESSAGE_LEN] for i in range(0, len(text), _MAX_MESSAGE_LEN)] or [""]


class MessagingGateway(ABC):
    """Delivery of text/images to a canonical phone. Sends never raise; they return False on failure."""

    @abstractmethod
    async def send_text(self, phone: str, body: str) -> bool:
        ...

    @abstractmethod
    async def send_image(self, phone: str, image_ref: str, caption: str = "") -> bool:
        ...

    async def fetch_media(self, media_ref: str) -> Tuple[bytes, str]:
        """Download an inbound media item. Raises ExternalServiceError."""
        raise ExternalServiceError(f"{type(self).__name__} cannot download media")

    async def close(self) -> None:
        return None


class WhatsAppClient(MessagingGateway):
    def __init__(self, access_token: str, phone_number_id: str, *, timeout: float = 15.0) -> None:
        self._messages_url = f"{_GRAPH_BASE}/{phone_number_id}/messages"
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._client = httpx.AsyncClient(timeout=timeout, headers=self._headers)

    @classmethod
    def from_env(cls) -> Optional["WhatsAppClient"]:
        token = os.environ.get("WHATSAPP_ACCESS_TOKEN", "").strip()
        phone_id = os.environ.get("WHATSAPP_PHONE_NUMBER_ID", "").strip()
        if not token or not phone_id:
            return None
        return cls(token, phone_id)

    async def _post(self, phone: str, payload: dict) -> bool:
        body = {"messaging_product": "whatsapp", "to": phone, **payload}
        try:
            resp = await self._client.post(self._messages_url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("WhatsAppClient: send failed (to=%s): %s", phone, exc)
            return False
        if resp.status_code not in (200, 201):
            logger.warning(
                "WhatsAppClient: send failed (to=%s status=%s): %s",
                phone, resp.status_code, resp.text,
            )
            return False
        return True

    async def send_text(self, phone: str, body: str) -> bool:
        """Send *body*, split into 4096-character chunks."""
        ok = True
        for chunk in _chunks(body):
            ok = await self._post(phone, {"type": "text", "text": {"body": chunk}}) and ok
        return ok

    async def send_image(self, phone: str, image_ref: str, caption: str = "") -> bool:
        image = {"link": image_ref} if image_ref.startswith("http") else {"id": image_ref}
        if caption:
            image["caption"] = caption[:1024]
        return await self._post(phone, {"type": "image", "image": image})

    async def fetch_media(self, media_ref: str) -> Tuple[bytes, str]:
        try:
            meta = await self._client.get(f"{_GRAPH_BASE}/{media_ref}")
            meta.raise_for_status()
            info = meta.json()
            media = await self._client.get(info["url"])
            media.raise_for_status()
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise ExternalServiceError(f"WhatsApp media {media_ref} download failed: {exc}", cause=exc) from exc
        return media.content, info.get("mime_type") or "image/jpeg"

    async def close(self) -> None:
        await self._client.aclose()


class LoggingGateway(MessagingGateway):
    """Used when WhatsApp credentials are missing: logs outbound messages only."""

    async def send_text(self, phone: str, body: str) -> bool:
        logger.info("LoggingGateway: text to %s: %s", phone, body[:200])
        return True

    async def send_image(self, phone: str, image_ref: str, caption: str = "") -> bool:
        logger.info("LoggingGateway: image %s to %s: %s", image_ref, phone, caption[:200])
        return True


def build_gateway() -> MessagingGateway:
    client = WhatsAppClient.from_env()
    if client is None:
        logger.warning("WHATSAPP_ACCESS_TOKEN / WHATSAPP_PHONE_NUMBER_ID not set; outbound messages are only logged")
        return LoggingGateway()
    return client
