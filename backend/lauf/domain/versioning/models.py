"""Versioned-entity contract: pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
import copy
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TypeVar

from lauf.domain.common.clock import new_id, utc_now

V = TypeVar("V", bound="VersionedEntity")


@dataclass
class VersionedEntity:
    """
    One immutable version of a logical entity.

    All versions of the same logical entity share ``original_id``; ``version``
    starts at 1 and grows by one per new version. At most one version per
    ``original_id`` is active. Once a version has been activated its content is
    frozen; only ``is_active`` (and the bookkeeping fields) may change after that.
    ``revision`` is bumped on every write and checked by the store.
    """

    id: str = field(default_factory=new_id)
    original_id: str = ""
    version: int = 1
    is_active: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    activated_at: Optional[datetime] = None
    revision: int = 0

    entity_name = "Entity"

    def __post_init__(self) -> None:
        if not self.original_id:
            self.original_id = self.id

    @property
    def is_frozen(self) -> bool:
        return self.is_active or self.activated_at is not None

    def new_version(self: V, version_number: int, **changes) -> V:
        """Copy this version's content into a fresh, inactive version record."""
        now = utc_now()
        fields = {
            f.name: copy.deepcopy(getattr(self, f.name))
            for f in dataclasses.fields(self)
        }
        fields.update(
            id=new_id(),
            original_id=self.original_id,
            version=version_number,
            is_active=False,
            created_at=now,
            updated_at=now,
            activated_at=None,
            revision=0,
        )
        fields.update(self._reset_on_new_version())
        fields.update(changes)
        return type(self)(**fields)

    def _reset_on_new_version(self) -> dict:
        """Per-type fields that a fresh version must not inherit (e.g. status)."""
        return {}

    def on_activated(self, now: datetime) -> None:
        """Hook for per-type state that follows activation."""

    def on_deactivated(self, now: datetime) -> None:
        """Hook for per-type state that follows deactivation."""
