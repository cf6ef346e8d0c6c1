"""Business rules for component progress — enforces the interaction state machine."""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from lauf.domain.common.errors import InvalidTransitionError, ValidationError
from lauf.domain.common.result import Result
from lauf.domain.flows.models import PASSIVE_TYPES, ComponentType, ComponentVersion, FlowSettings
from lauf.domain.progress.models import TERMINAL_STATUSES, ComponentProgress, Interaction, InteractionType, ProgressStatus

# Which component types accept which answer submission
SUBMISSION_TYPES: dict[InteractionType, set[ComponentType]] = {
    InteractionType.SUBMIT_QUIZ_ANSWER: {ComponentType.QUIZ, ComponentType.SURVEY},
    InteractionType.SUBMIT_TASK_ANSWER: {ComponentType.TASK, ComponentType.INTERACTIVE},
}


@dataclass
class TransitionOutcome:
    progress: ComponentProgress
    previous_status: ProgressStatus
    changed: bool
    passed: Optional[bool] = None

    @property
    def completed(self) -> bool:
        return self.changed and self.progress.status == ProgressStatus.COMPLETED and self.previous_status != ProgressStatus.COMPLETED

    @property
    def became_terminal(self) -> bool:
        return self.changed and self.progress.is_terminal and self.previous_status not in TERMINAL_STATUSES


def effective_max_attempts(component: ComponentVersion, settings: FlowSettings) -> Optional[int]:
    """Component setting wins over the flow default; None or <= 0 means unlimited."""
    limit = component.max_attempts if component.max_attempts is not None else settings.max_attempts
    if limit is None or limit <= 0:
        return None
    return limit


def can_retry(progress: ComponentProgress, component: ComponentVersion, settings: FlowSettings) -> bool:
    if not settings.allow_retry or progress.status not in TERMINAL_STATUSES:
        return False
    limit = effective_max_attempts(component, settings)
    return limit is None or progress.attempts < limit


def score_percent(score: int, max_score: Optional[int]) -> int:
    if max_score is None:
        return score
    return round(score * 100 / max_score)


def _invalid(progress: ComponentProgress, interaction: Interaction, reason: str) -> Result[TransitionOutcome]:
    return Result.fail(InvalidTransitionError(
        f"{interaction.type.value} is not allowed: {reason}",
        current=progress.status.value,
        attempted=interaction.type.value,
    ))


def _start(progress: ComponentProgress, now: datetime) -> None:
    progress.status = ProgressStatus.IN_PROGRESS
    progress.started_at = now
    progress.attempts = 1


def _complete(progress: ComponentProgress, now: datetime) -> None:
    progress.status = ProgressStatus.COMPLETED
    progress.completed_at = now


def _validate_score(component: ComponentVersion, interaction: Interaction, threshold: Optional[int]) -> Result[Optional[int]]:
    score, max_score = interaction.score, interaction.max_score
    if score is None:
        if threshold or component.component_type in (ComponentType.QUIZ, ComponentType.SURVEY):
            return Result.fail(ValidationError("A score is required for this submission.", field="score"))
        return Result.ok(None)
    if score < 0:
        return Result.fail(ValidationError("score must not be negative.", field="score"))
    if max_score is not None:
        if max_score <= 0:
            return Result.fail(ValidationError("max_score must be positive.", field="max_score"))
        if score > max_score:
            return Result.fail(ValidationError("score cannot exceed max_score.", field="score"))
    elif score > 100:
        return Result.fail(ValidationError("score without max_score is a percentage (0-100).", field="score"))
    return Result.ok(score_percent(score, max_score))


def apply_interaction(
    progress: ComponentProgress,
    component: ComponentVersion,
    settings: FlowSettings,
    interaction: Interaction,
    now: datetime,
) -> Result[TransitionOutcome]:
    """
    Apply one interaction to ``progress`` in place.

    NotStarted -> InProgress -> {Completed | Skipped}, with Paused reachable
    from InProgress and returning to it. Completed and Skipped are terminal
    except for an allowed Retry.
    """
    previous = progress.status
    kind = interaction.type
    passed: Optional[bool] = None

    if kind == InteractionType.VIEW:
        if previous != ProgressStatus.NOT_STARTED:
            return Result.ok(TransitionOutcome(progress, previous, changed=False))
        _start(progress, now)

    elif kind == InteractionType.START_READING:
        if previous != ProgressStatus.NOT_STARTED:
            return _invalid(progress, interaction, "component has already been started.")
        _start(progress, now)

    elif kind == InteractionType.FINISH_READING:
        if component.component_type not in PASSIVE_TYPES:
            return _invalid(progress, interaction, f"{component.component_type.value} components are not read.")
        if previous != ProgressStatus.IN_PROGRESS:
            return _invalid(progress, interaction, "component is not in progress.")
        _complete(progress, now)

    elif kind in SUBMISSION_TYPES:
        if component.component_type not in SUBMISSION_TYPES[kind]:
            return _invalid(progress, interaction, f"{component.component_type.value} components do not take this answer.")
        if previous not in (ProgressStatus.NOT_STARTED, ProgressStatus.IN_PROGRESS):
            return _invalid(progress, interaction, "component is not in progress.")

        threshold = component.passing_score
        scored = _validate_score(component, interaction, threshold)
        if not scored.is_success:
            return Result.fail(scored.error)
        percent = scored.value

        # submitting against an untouched component starts it
        if previous == ProgressStatus.NOT_STARTED:
            _start(progress, now)

        progress.score = interaction.score
        progress.max_score = interaction.max_score
        if percent is not None and (progress.best_score is None or percent > progress.best_score):
            progress.best_score = percent

        passed = not threshold or (percent is not None and percent >= threshold)
        limit = effective_max_attempts(component, settings)
        exhausted = limit is not None and progress.attempts >= limit
        progress.passed = passed
        if passed or exhausted:
            _complete(progress, now)
        else:
            progress.attempts += 1

    elif kind == InteractionType.SKIP:
        if previous not in (ProgressStatus.NOT_STARTED, ProgressStatus.IN_PROGRESS):
            return _invalid(progress, interaction, "only unfinished components can be skipped.")
        if not settings.allow_skipping:
            return _invalid(progress, interaction, "this flow does not allow skipping.")
        if component.is_required:
            return _invalid(progress, interaction, "required components cannot be skipped.")
        progress.status = ProgressStatus.SKIPPED
        progress.completed_at = now

    elif kind == InteractionType.RETRY:
        if not can_retry(progress, component, settings):
            return _invalid(progress, interaction, "retry is not permitted.")
        progress.status = ProgressStatus.IN_PROGRESS
        progress.attempts += 1
        progress.score = None
        progress.max_score = None
        progress.passed = None
        progress.completed_at = None

    elif kind == InteractionType.PAUSE:
        if previous != ProgressStatus.IN_PROGRESS:
            return _invalid(progress, interaction, "only components in progress can be paused.")
        if not settings.allow_pause:
            return _invalid(progress, interaction, "this flow does not allow pausing.")
        progress.status = ProgressStatus.PAUSED

    elif kind == InteractionType.RESUME:
        if previous != ProgressStatus.PAUSED:
            return _invalid(progress, interaction, "component is not paused.")
        progress.status = ProgressStatus.IN_PROGRESS

    else:
        return _invalid(progress, interaction, "unknown interaction.")

    if interaction.time_spent_seconds and interaction.time_spent_seconds > 0:
        progress.time_spent_seconds += interaction.time_spent_seconds
    if interaction.data:
        progress.progress_data.update(interaction.data)
    progress.updated_at = now
    return Result.ok(TransitionOutcome(progress, previous, changed=True, passed=passed))
