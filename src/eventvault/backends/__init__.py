"""
Backends — concrete identity, relational and blob stores.
"""

from .local import LocalBlobStore, LocalStore
from .memory import FaultPlan, MemoryBlobStore, MemoryIdentityProvider, MemoryStore

__all__ = [
    "FaultPlan",
    "LocalBlobStore",
    "LocalStore",
    "MemoryBlobStore",
    "MemoryIdentityProvider",
    "MemoryStore",
]
