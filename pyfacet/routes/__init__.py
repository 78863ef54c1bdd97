"""
HTTP routes for the pyfacet service.
"""

from .filters import router, get_engine, get_store, get_settings

__all__ = ["router", "get_engine", "get_store", "get_settings"]
