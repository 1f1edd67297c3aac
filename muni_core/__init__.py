# =============================================================================
# muni_core/__init__.py
# Offline-first core for the municipal services client
# =============================================================================
"""
muni_core - booking, announcement and service-catalog data access that keeps
working without a network connection.

Most callers only need :func:`muni_core.offline.build_services`.
"""

__version__ = "0.4.0"
