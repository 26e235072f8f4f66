"""Adapters — side-effect bindings for host tools.

Public re-exports for convenient access.
"""

from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.adapters.mock import MockAdapter
from blueos_installer.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
