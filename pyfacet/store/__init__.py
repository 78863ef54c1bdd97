"""
Filter store module for the pyfacet service.

This module provides the remote and file-backed filter stores, query
string encoding, and the publish workflow.
"""

from .query import to_query_params, to_query_string
from .http import HttpFilterStore, FilterPage
from .file import FileFilterStore
from .publish import PublishResult, publish_filter

__all__ = [
    "to_query_params",
    "to_query_string",
    "HttpFilterStore",
    "FilterPage",
    "FileFilterStore",
    "PublishResult",
    "publish_filter",
]
