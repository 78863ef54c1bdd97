"""
pyfacet - reusable filters bound to UI targets.

Filters are boolean condition trees. Each target gets one combined
predicate: a local row test plus the query parameters that ask a server
for the same rows.
"""

__version__ = "1.0.0"
