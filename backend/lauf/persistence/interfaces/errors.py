"""Errors surfaced by persistence implementations."""
from __future__ import annotations


class ConcurrencyConflict(Exception):
    """A conditional write lost against a concurrent one (revision or uniqueness clash)."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"Concurrent write conflict on {entity} '{entity_id}'")
