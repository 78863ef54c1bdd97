"""
Engine module for the pyfacet service.

This module tracks filter instances and values and keeps each target's
combined predicate current.
"""

from .context import FilterEngine, DefinitionLoader, Callback

__all__ = ["FilterEngine", "DefinitionLoader", "Callback"]
