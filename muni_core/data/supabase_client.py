# =============================================================================
# muni_core/data/supabase_client.py
# Supabase-backed Remote Document Store
# Handles client creation and document CRUD against Supabase tables
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence
import logging

import requests

from muni_core.data.base import RemoteDocumentStore
from muni_core.data.query import Filter, OrderSpec
from muni_core.errors import ConfigurationError, RemoteStoreError

logger = logging.getLogger(__name__)

# PostgREST caps a single response at 1000 rows
PAGE_SIZE = 1000

_FILTER_METHODS = {
    "==": "eq",
    "!=": "neq",
    "<": "lt",
    "<=": "lte",
    ">": "gt",
    ">=": "gte",
    "in": "in_",
}


def get_supabase_client(url: Optional[str], key: Optional[str]):
    """
    Create a Supabase client.

    Args:
        url: Project URL, e.g. https://your-project.supabase.co
        key: Anon or service key

    Returns:
        supabase.Client
    """
    if not url or not key:
        raise ConfigurationError(
            "Supabase url and key are required for the 'supabase' provider",
            config_key="supabase",
        )

    from supabase import create_client

    return create_client(url, key)


class SupabaseDocumentStore(RemoteDocumentStore):
    """
    Remote document store over Supabase tables (one table per collection).

    Every table is expected to have an ``id`` primary key and a nullable
    ``client_ref`` text column used to deduplicate replayed creates.
    """

    def __init__(self, client, url: Optional[str] = None, key: Optional[str] = None, timeout: float = 5.0):
        self.client = client
        self.url = url
        self.key = key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> SupabaseDocumentStore:
        client = get_supabase_client(settings.supabase_url, settings.supabase_key)
        return cls(
            client,
            url=settings.supabase_url,
            key=settings.supabase_key,
            timeout=settings.connection_timeout,
        )

    @staticmethod
    def _apply_filters(query, filters: Optional[Sequence[Filter]]):
        for f in filters or ():
            method = getattr(query, _FILTER_METHODS[f.op])
            value = list(f.value) if f.op == "in" else f.value
            query = method(f.field, value)
        return query

    def create(self, collection: str, doc: Dict[str, Any]) -> str:
        try:
            response = self.client.table(collection).insert(doc).execute()
        except Exception as e:
            raise RemoteStoreError(
                f"Insert into {collection} failed: {e}",
                collection=collection,
                operation="create",
            ) from e

        if not response.data:
            raise RemoteStoreError(
                f"Insert into {collection} returned no row",
                collection=collection,
                operation="create",
            )
        return str(response.data[0]["id"])

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[OrderSpec] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch ALL matching rows, paging past the 1000 row limit."""
        all_data: List[Dict[str, Any]] = []
        offset = 0

        try:
            while True:
                query = self._apply_filters(self.client.table(collection).select("*"), filters)
                if order:
                    query = query.order(order.field, desc=order.descending)

                response = query.range(offset, offset + PAGE_SIZE - 1).execute()

                if not response.data:
                    break
                all_data.extend(response.data)
                if len(response.data) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE
        except Exception as e:
            raise RemoteStoreError(
                f"Query on {collection} failed: {e}",
                collection=collection,
                operation="query",
            ) from e

        return [{**row, "id": str(row["id"])} for row in all_data]

    def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:
        try:
            response = self.client.table(collection).update(patch).eq("id", doc_id).execute()
        except Exception as e:
            raise RemoteStoreError(
                f"Update of {collection}/{doc_id} failed: {e}",
                collection=collection,
                operation="update",
            ) from e

        if response.data is not None and len(response.data) == 0:
            raise RemoteStoreError(
                f"Update of {collection}/{doc_id} matched no row",
                collection=collection,
                operation="update",
            )

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            self.client.table(collection).delete().eq("id", doc_id).execute()
        except Exception as e:
            raise RemoteStoreError(
                f"Delete of {collection}/{doc_id} failed: {e}",
                collection=collection,
                operation="delete",
            ) from e

    def find_by_client_ref(self, collection: str, client_ref: str) -> Optional[str]:
        try:
            response = (
                self.client.table(collection)
                .select("id")
                .eq("client_ref", client_ref)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteStoreError(
                f"Lookup of client_ref on {collection} failed: {e}",
                collection=collection,
                operation="find_by_client_ref",
            ) from e

        if response.data:
            return str(response.data[0]["id"])
        return None

    def is_available(self) -> bool:
        """Probe the PostgREST endpoint; any HTTP answer counts as reachable."""
        if not self.url:
            return self.client is not None

        try:
            requests.get(
                f"{self.url.rstrip('/')}/rest/v1/",
                headers={"apikey": self.key or ""},
                timeout=self.timeout,
            )
            return True
        except requests.exceptions.RequestException as e:
            logger.debug(f"Supabase health probe failed: {e}")
            return False
