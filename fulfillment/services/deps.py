"""Collaborators shared by request handlers, background dispatch and the schedulers."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from fulfillment.config import DispatchConfig

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from fulfillment.infra.cache import BaseCache
    from fulfillment.integrations.whatsapp import MessagingGateway
    from fulfillment.parsing import IntentParser, ReceiptReader


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ServiceDeps:
    session_factory: "async_sessionmaker[AsyncSession]"
    cache: "BaseCache"
    gateway: "MessagingGateway"
    config: DispatchConfig = field(default_factory=DispatchConfig)
    intent_parser: Optional["IntentParser"] = None
    receipt_reader: Optional["ReceiptReader"] = None
    clock: Callable[[], datetime] = utcnow
