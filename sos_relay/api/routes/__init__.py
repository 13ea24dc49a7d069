from __future__ import annotations

from sos_relay.api.routes.health import router as health_router
from sos_relay.api.routes.rooms import router as rooms_router

__all__ = ["health_router", "rooms_router"]
