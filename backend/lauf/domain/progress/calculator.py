"""Derived step / flow progress: a single source of truth for completion math."""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional

from lauf.domain.flows.models import FlowSettings, FlowSnapshot
from lauf.domain.progress.models import ComponentProgress, FlowProgressView, ProgressStatus, StepProgressView


def progress_percentage(completed: int, total: int) -> int:
    """``round(100 * completed / total)`` half-up; nothing required means done."""
    if total <= 0:
        return 100
    value = Decimal(100 * completed) / Decimal(total)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def counts_as_done(progress: Optional[ComponentProgress], settings: FlowSettings) -> bool:
    if progress is None:
        return False
    if progress.status == ProgressStatus.COMPLETED:
        return True
    return progress.status == ProgressStatus.SKIPPED and settings.allow_skipping


def build_flow_progress(
    assignment_id: str,
    snapshot: FlowSnapshot,
    progress_by_component: Mapping[str, ComponentProgress],
) -> FlowProgressView:
    """
    Walk the snapshot in step order and derive every step's state.

    A step is complete when all of its required components are done. With
    sequential completion a step is unlocked only once every earlier step is
    complete; otherwise all steps are unlocked.
    """
    settings = snapshot.flow.settings
    steps = []
    completed_total = 0
    required_total = 0
    previous_complete = True

    for node in snapshot.steps:
        required = node.required_components
        done = sum(1 for c in required if counts_as_done(progress_by_component.get(c.id), settings))
        touched = any(
            progress_by_component.get(c.id) is not None
            and progress_by_component[c.id].status != ProgressStatus.NOT_STARTED
            for c in node.components
        )

        if done == len(required):
            status = ProgressStatus.COMPLETED
        elif touched:
            status = ProgressStatus.IN_PROGRESS
        else:
            status = ProgressStatus.NOT_STARTED

        unlocked = previous_complete if settings.require_sequential_completion else True
        steps.append(StepProgressView(
            step_version_id=node.step.id,
            order=node.step.order,
            title=node.step.title,
            status=status,
            is_unlocked=unlocked,
            completed_required=done,
            total_required=len(required),
        ))
        previous_complete = previous_complete and status == ProgressStatus.COMPLETED
        completed_total += done
        required_total += len(required)

    return FlowProgressView(
        assignment_id=assignment_id,
        flow_version_id=snapshot.flow.id,
        percent=progress_percentage(completed_total, required_total),
        completed_required=completed_total,
        total_required=required_total,
        steps=steps,
        components=dict(progress_by_component),
    )
