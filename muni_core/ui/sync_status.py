# =============================================================================
# muni_core/ui/sync_status.py
# Sidebar Sync Status
# =============================================================================
"""
Streamlit helpers that surface the offline sync state:
connection badge, queued-change count and records that did not sync.
"""
from __future__ import annotations
from typing import Optional
import logging

import streamlit as st

from muni_core.config import SyncSettings, load_settings
from muni_core.errors import ErrorContext, error_boundary, handle_error
from muni_core.offline import OfflineServices, build_services
from muni_core.repositories import DomainRepository

logger = logging.getLogger(__name__)


@st.cache_resource
def get_offline_services(_settings: Optional[SyncSettings] = None) -> OfflineServices:
    """
    Build and start the services once per Streamlit server process.

    Pages receive the container from here instead of constructing their own.
    """
    try:
        services = build_services(_settings or load_settings())
        services.start()
    except Exception as e:
        # Nothing is cached, so the next rerun tries again
        handle_error(e)
        raise
    return services


@error_boundary(default_return=0)
def render_failed_records(repository: DomainRepository, label: Optional[str] = None) -> int:
    """
    Warn about records of one collection whose changes did not sync.

    Returns:
        Number of failed records shown
    """
    failed = repository.failed_records()
    if not failed:
        return 0

    label = label or repository.collection
    st.warning(f"{len(failed)} {label} change(s) did not sync")
    with st.expander(f"Unsynced {label}", expanded=False):
        st.dataframe(repository.to_dataframe(failed), use_container_width=True)
    return len(failed)


@error_boundary()
def render_sync_status(services: OfflineServices, show_failures: bool = True) -> None:
    """Render the connection badge, pending count and sync failures in the sidebar."""
    status = services.get_status_display()
    connection = status["connection"]
    sync = status["sync"]

    with st.sidebar:
        if connection["is_online"]:
            st.success("🟢 Online")
        else:
            st.info("🔴 Offline - changes are saved on this device")

        pending = sync["pending_count"]
        if sync["is_syncing"]:
            st.caption(f"Syncing {pending} change(s)...")
        elif pending:
            st.caption(f"{pending} change(s) waiting to sync")
        elif sync["last_success"]:
            st.caption(f"Last synced {sync['last_success'][:19].replace('T', ' ')}")

        if connection["is_online"] and pending and not sync["is_syncing"]:
            if st.button("Sync now", key="muni_sync_now"):
                with ErrorContext("Syncing queued changes"):
                    services.engine.request_drain()

        if not show_failures:
            return

        failures = services.engine.failures()
        if failures:
            st.warning(f"⚠️ {len(failures)} change(s) did not sync")
            with st.expander("Sync failures", expanded=False):
                for failure in failures:
                    st.markdown(
                        f"- **{failure.kind}** `{failure.collection}/{failure.target_id}`: "
                        f"{failure.error or 'unknown error'}"
                    )
                if st.button("Dismiss", key="muni_clear_sync_failures"):
                    with ErrorContext("Clearing sync failures"):
                        services.engine.clear_failures()
                        logger.info("Sync failure log cleared from the sidebar")
