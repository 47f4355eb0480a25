"""
Store Module
============

Single owner of the entity snapshot shared by every other component.

    - EntitySnapshot: Immutable four-collection view
    - EntityStore: Holds the current snapshot, atomic replacement
"""

from roadwatch.store.entity_store import Collection, EntitySnapshot, EntityStore

__all__ = [
    "Collection",
    "EntitySnapshot",
    "EntityStore",
]
