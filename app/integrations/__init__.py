"""External integration adapters."""

from .integrator import DashboardResponse, IntegratorClient, RunAccepted
from .store import Filter, Order, StoreClient
from .supabase import SupabaseStore

__all__ = [
    "DashboardResponse",
    "IntegratorClient",
    "RunAccepted",
    "Filter",
    "Order",
    "StoreClient",
    "SupabaseStore",
]
