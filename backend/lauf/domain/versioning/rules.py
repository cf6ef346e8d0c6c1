"""Business rules for version numbering and activation."""
from __future__ import annotations
from datetime import datetime
from typing import Iterable, List

from lauf.domain.common.errors import ImmutableVersionError, ValidationError
from lauf.domain.common.result import Result
from lauf.domain.versioning.models import VersionedEntity


def next_version_number(latest_version: int) -> int:
    """Versions start at 1 and grow by exactly one per new record."""
    return max(latest_version, 0) + 1


def plan_activation(target: VersionedEntity, siblings: Iterable[VersionedEntity], now: datetime) -> Result[List[VersionedEntity]]:
    """
    Flip ``target`` on and every other version of the same logical entity off.

    Returns the versions whose state actually changed; the caller must write
    all of them in one unit of work so no reader ever sees zero or two
    active versions.
    """
    changed: List[VersionedEntity] = []
    for sibling in siblings:
        if sibling.id == target.id:
            continue
        if sibling.original_id != target.original_id:
            return Result.fail(ValidationError(
                f"Version '{sibling.id}' does not belong to '{target.original_id}'.",
                field="original_id",
            ))
        if sibling.is_active:
            sibling.is_active = False
            sibling.updated_at = now
            sibling.on_deactivated(now)
            changed.append(sibling)

    if not target.is_active:
        target.is_active = True
        target.updated_at = now
        if target.activated_at is None:
            target.activated_at = now
        target.on_activated(now)
        changed.append(target)

    return Result.ok(changed)


def ensure_editable(version: VersionedEntity) -> Result[VersionedEntity]:
    if version.is_frozen:
        return Result.fail(ImmutableVersionError(version.entity_name, version.id))
    return Result.ok(version)
