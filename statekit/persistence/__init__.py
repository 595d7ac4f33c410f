"""
Persistence package: adapter contract, serialized state shape, and the
throttled manager that writes through the adapter.
"""

from .adapter import PersistenceAdapter
from .serializer import SerializedState
from .manager import PersistenceManager

__all__ = ["PersistenceAdapter", "SerializedState", "PersistenceManager"]
