"""Service layer: order lifecycle, presence, dispatch, draft assembly and courier commands."""
from fulfillment.services.courier_service import CourierCommandService
from fulfillment.services.deps import ServiceDeps
from fulfillment.services.dispatch_service import DispatchService, dispatch_order, spawn_dispatch
from fulfillment.services.draft_service import DraftAssembler, DraftSessionStore
from fulfillment.services.notices import NoticeLedger
from fulfillment.services.order_service import OrderService
from fulfillment.services.presence_service import PresenceService

__all__ = [
    "ServiceDeps",
    "OrderService",
    "PresenceService",
    "DispatchService",
    "dispatch_order",
    "spawn_dispatch",
    "DraftAssembler",
    "DraftSessionStore",
    "CourierCommandService",
    "NoticeLedger",
]
