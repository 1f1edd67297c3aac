"""
Streamlit components for the offline sync state
"""
from muni_core.ui.sync_status import (
    get_offline_services,
    render_failed_records,
    render_sync_status,
)

__all__ = [
    "get_offline_services",
    "render_failed_records",
    "render_sync_status",
]
