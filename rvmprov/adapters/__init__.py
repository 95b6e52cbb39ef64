"""Adapters — the process executor and file-system accessor.

Public re-exports for convenient access.
"""

from rvmprov.adapters.base import Adapter, ExecutionContext
from rvmprov.adapters.mock import MockAdapter
from rvmprov.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
