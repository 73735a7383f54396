"""Test fixtures for idlink tests.

Provides:
- An in-memory contact store and unit-of-work provider
"""

from .store import EPOCH, MemoryContactStore, MemoryStoreProvider

__all__ = ["EPOCH", "MemoryContactStore", "MemoryStoreProvider"]
