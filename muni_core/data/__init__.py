# =============================================================================
# muni_core/data/__init__.py
# Remote Document Store providers
# =============================================================================

from muni_core.data.query import Filter, OrderSpec, apply_filters, sort_records
from muni_core.data.base import RemoteDocumentStore
from muni_core.data.memory_client import InMemoryDocumentStore
from muni_core.data.supabase_client import SupabaseDocumentStore, get_supabase_client

# Registry of available providers
REMOTE_PROVIDERS = {
    "supabase": SupabaseDocumentStore.from_settings,
    "mock": lambda settings: InMemoryDocumentStore(),
}


def build_remote_store(settings) -> RemoteDocumentStore:
    """Create the remote document store named by settings.remote_provider."""
    return REMOTE_PROVIDERS[settings.remote_provider](settings)


__all__ = [
    "Filter",
    "OrderSpec",
    "apply_filters",
    "sort_records",
    "RemoteDocumentStore",
    "InMemoryDocumentStore",
    "SupabaseDocumentStore",
    "get_supabase_client",
    "build_remote_store",
]
