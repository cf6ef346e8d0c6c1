"""Business rules for authoring flows, steps and components."""
from __future__ import annotations
from typing import Iterable, Optional

from lauf.domain.common.errors import ValidationError
from lauf.domain.common.result import Result
from lauf.domain.flows.models import ComponentType, FlowSettings

TITLE_MIN, TITLE_MAX = 3, 200
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 2000
PRIORITY_MIN, PRIORITY_MAX = 0, 10
STEP_TITLE_MAX = 200
SETTING_VALUE_TYPES = (str, int, float, bool, list)


def validate_flow_content(data: dict) -> Result[dict]:
    """Validates title, description, priority, tags and settings of a flow."""
    title = (data.get("title") or "").strip()
    if not TITLE_MIN <= len(title) <= TITLE_MAX:
        return Result.fail(ValidationError(
            f"Flow title must be {TITLE_MIN}-{TITLE_MAX} characters.", field="title"
        ))

    description = (data.get("description") or "").strip()
    if not DESCRIPTION_MIN <= len(description) <= DESCRIPTION_MAX:
        return Result.fail(ValidationError(
            f"Flow description must be {DESCRIPTION_MIN}-{DESCRIPTION_MAX} characters.", field="description"
        ))

    priority = data.get("priority", 5)
    if not isinstance(priority, int) or isinstance(priority, bool) or not PRIORITY_MIN <= priority <= PRIORITY_MAX:
        return Result.fail(ValidationError(
            f"Flow priority must be an integer in [{PRIORITY_MIN}, {PRIORITY_MAX}].", field="priority"
        ))

    tags = data.get("tags") or []
    if not isinstance(tags, list) or any(not isinstance(t, str) or not t.strip() for t in tags):
        return Result.fail(ValidationError("Tags must be a list of non-empty strings.", field="tags"))

    settings = validate_settings(data.get("settings"))
    if not settings.is_success:
        return Result.fail(settings.error)

    return Result.ok(data)


def validate_settings(raw: Optional[dict]) -> Result[FlowSettings]:
    if raw is not None and not isinstance(raw, dict):
        return Result.fail(ValidationError("Settings must be an object.", field="settings"))
    unknown = set(raw or {}) - set(FlowSettings.__dataclass_fields__)
    if unknown:
        return Result.fail(ValidationError(
            f"Unknown flow settings: {sorted(unknown)}.", field="settings"
        ))

    settings = FlowSettings.from_dict(raw)
    if settings.max_attempts is not None and settings.max_attempts <= 0:
        return Result.fail(ValidationError("max_attempts must be positive.", field="settings.max_attempts"))
    days = settings.time_to_complete_working_days
    if days is not None and days <= 0:
        return Result.fail(ValidationError(
            "time_to_complete_working_days must be positive.", field="settings.time_to_complete_working_days"
        ))
    return Result.ok(settings)


def validate_order(order: Optional[int], taken: Iterable[int], owner: str) -> Result[int]:
    """Resolve a child's sequence index: explicit values must be unique, default is last + 1."""
    taken = set(taken)
    if order is None:
        return Result.ok(max(taken, default=0) + 1)
    if not isinstance(order, int) or isinstance(order, bool) or order < 1:
        return Result.fail(ValidationError("order must be a positive integer.", field="order"))
    if order in taken:
        return Result.fail(ValidationError(f"order {order} is already used in {owner}.", field="order"))
    return Result.ok(order)


def validate_step_content(data: dict) -> Result[dict]:
    title = (data.get("title") or "").strip()
    if not title or len(title) > STEP_TITLE_MAX:
        return Result.fail(ValidationError(
            f"Step title is required and must be at most {STEP_TITLE_MAX} characters.", field="title"
        ))
    return Result.ok(data)


def validate_component_content(data: dict) -> Result[ComponentType]:
    title = (data.get("title") or "").strip()
    if not title or len(title) > STEP_TITLE_MAX:
        return Result.fail(ValidationError(
            f"Component title is required and must be at most {STEP_TITLE_MAX} characters.", field="title"
        ))

    try:
        component_type = ComponentType(data.get("component_type"))
    except ValueError:
        return Result.fail(ValidationError(
            f"component_type must be one of {[t.value for t in ComponentType]}.", field="component_type"
        ))

    duration = data.get("estimated_duration_minutes", 15)
    if not isinstance(duration, int) or isinstance(duration, bool) or duration < 0:
        return Result.fail(ValidationError(
            "estimated_duration_minutes must be a non-negative integer.", field="estimated_duration_minutes"
        ))

    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        return Result.fail(ValidationError("Component settings must be an object.", field="settings"))
    for key, value in settings.items():
        if value is not None and not isinstance(value, SETTING_VALUE_TYPES):
            return Result.fail(ValidationError(
                f"Setting '{key}' has an unsupported value type.", field=f"settings.{key}"
            ))

    passing = settings.get("passing_score")
    if passing is not None and (not isinstance(passing, int) or isinstance(passing, bool) or not 0 <= passing <= 100):
        return Result.fail(ValidationError(
            "passing_score must be an integer in [0, 100].", field="settings.passing_score"
        ))

    max_attempts = settings.get("max_attempts")
    if max_attempts is not None and (not isinstance(max_attempts, int) or isinstance(max_attempts, bool) or max_attempts <= 0):
        return Result.fail(ValidationError(
            "max_attempts must be a positive integer.", field="settings.max_attempts"
        ))

    if component_type == ComponentType.LINK and not settings.get("url"):
        return Result.fail(ValidationError("Link components need a 'url' setting.", field="settings.url"))

    return Result.ok(component_type)
