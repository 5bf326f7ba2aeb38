"""cartonprice web route modules.

Each module exports a `router` (APIRouter) that cartonprice.web.app includes.
"""

from cartonprice.web.routes import currency, health, pricing

__all__ = ["currency", "health", "pricing"]
