"""Request registries for tracking asynchronous work.

All registries implement the RequestRegistry protocol defined in base.py.

Available Registries:
    - MemoryRequestRegistry: process-local, bounded, optional TTL
"""

from webhook_broker.registry.base import RequestRegistry
from webhook_broker.registry.memory import MemoryRequestRegistry

__all__ = [
    "MemoryRequestRegistry",
    "RequestRegistry",
]
