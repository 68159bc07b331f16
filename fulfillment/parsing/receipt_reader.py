"""Receipt photo -> detected total amount (integer rupiah)."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple

from fulfillment.core.exceptions import ExternalServiceError

if TYPE_CHECKING:
    from fulfillment.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)

ImageFetcher = Callable[[str], Awaitable[Tuple[bytes, str]]]

_RECEIPT_PROMPT = (
    "Ini foto struk belanja. Tuliskan HANYA angka total akhir yang harus dibayar, "
    "tanpa 'Rp', tanpa titik atau koma pemisah ribuan. Jika tidak terbaca, jawab 0."
)

_AMOUNT_RE = re.compile(r"\d[\d.,]*")


def parse_amount(text: str) -> Optional[int]:
    """Pull an integer rupiah amount out of free text ("Rp 25.500" -> 25500)."""
    best: Optional[int] = None
    for token in _AMOUNT_RE.findall(text or ""):
        token = re.sub(r"[.,]\d{2}$", "", token)  # cents
        digits = re.sub(r"\D", "", token)
        if not digits:
            continue
        value = int(digits)
        if best is None or value > best:
            best = value
    return best


class ReceiptReader(ABC):
    @abstractmethod
    async def read_total(self, image_ref: str) -> int:
        """Return the receipt total. Raises ExternalServiceError when unreadable."""


class LLMReceiptReader(ReceiptReader):
    """Downloads the image through *fetch_image* and asks a vision model for the total."""

    def __init__(self, llm: "BaseLLMClient", fetch_image: ImageFetcher) -> None:
        self._llm = llm
        self._fetch_image = fetch_image

    async def read_total(self, image_ref: str) -> int:
        try:
            image, mime_type = await self._fetch_image(image_ref)
            answer = await self._llm.describe_image(image, mime_type, _RECEIPT_PROMPT)
        except ExternalServiceError:
            raise
        except Exception as exc:
            raise ExternalServiceError(f"Receipt reader failed for {image_ref}: {exc}", cause=exc) from exc
        amount = parse_amount(answer)
        if not amount:
            raise ExternalServiceError(
                f"No total detected on receipt {image_ref}", details={"answer": answer[:120]}
            )
        logger.info("Receipt %s read: total=%d", image_ref, amount)
        return amount
