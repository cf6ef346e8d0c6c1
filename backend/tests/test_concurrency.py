"""Optimistic concurrency and cancellation against a shared SQLite file."""
import threading
from concurrent.futures import ThreadPoolExecutor

from conftest import ADMIN, USER, article, quiz

from lauf.application.progress_app_service import ProgressAppService
from lauf.core import config
from lauf.domain.assignments.models import AssignmentStatus
from lauf.domain.common.errors import (
    ConcurrentModificationError,
    DuplicateAssignmentError,
    OperationCancelledError,
    StaleInteractionError,
)
from lauf.domain.progress.models import Interaction, InteractionType, ProgressStatus


def _submit(score: int) -> Interaction:
    return Interaction(InteractionType.SUBMIT_QUIZ_ANSWER, score=score)


def _quiz_in_progress(make_flow, assignments, progress):
    """One-quiz flow whose quiz has already been failed once."""
    snapshot = make_flow([[quiz(passing_score=70)]])
    (test,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    progress.interact(assignment.id, test.id, _submit(40)).unwrap()
    return assignment, test


def test_competing_pass_wins_and_late_submission_is_stale(make_flow, assignments, progress, interleaving_factory):
    assignment, test = _quiz_in_progress(make_flow, assignments, progress)

    def competing_pass():
        progress.interact(assignment.id, test.id, _submit(75)).unwrap()

    racing = ProgressAppService(interleaving_factory("progress", "update", competing_pass))
    result = racing.interact(assignment.id, test.id, _submit(90))

    assert isinstance(result.error, StaleInteractionError)
    stored = progress.get_component_progress(assignment.id, test.id)
    assert (stored.status, stored.score, stored.attempts) == (ProgressStatus.COMPLETED, 75, 2)
    assert assignments.get_assignment(assignment.id).unwrap().status == AssignmentStatus.COMPLETED


def test_competing_failure_is_replayed_against_fresh_state(make_flow, assignments, progress, interleaving_factory):
    assignment, test = _quiz_in_progress(make_flow, assignments, progress)

    def competing_fail():
        progress.interact(assignment.id, test.id, _submit(40)).unwrap()

    racing = ProgressAppService(interleaving_factory("progress", "update", competing_fail))
    outcome = racing.interact(assignment.id, test.id, _submit(90)).unwrap()

    assert outcome.progress.status == ProgressStatus.COMPLETED
    # the replay saw the competing attempt
    assert outcome.progress.attempts == 3
    assert outcome.progress.best_score == 90
    assert outcome.assignment.status == AssignmentStatus.COMPLETED


def test_conflict_without_retries_left_is_reported(make_flow, assignments, progress, interleaving_factory, monkeypatch):
    assignment, test = _quiz_in_progress(make_flow, assignments, progress)
    monkeypatch.setattr(config, "OPTIMISTIC_RETRY_LIMIT", 0)

    def competing_fail():
        progress.interact(assignment.id, test.id, _submit(40)).unwrap()

    racing = ProgressAppService(interleaving_factory("progress", "update", competing_fail))
    result = racing.interact(assignment.id, test.id, _submit(90))

    assert isinstance(result.error, ConcurrentModificationError)
    stored = progress.get_component_progress(assignment.id, test.id)
    assert (stored.status, stored.attempts) == (ProgressStatus.IN_PROGRESS, 3)


def test_parallel_assignments_leave_exactly_one_open(make_flow, assignments):
    snapshot = make_flow([[article()]])
    flow_id = snapshot.flow.original_id
    barrier = threading.Barrier(2)

    def assign():
        barrier.wait()
        return assignments.assign_flow(USER, flow_id, ADMIN)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: assign(), range(2)))

    succeeded = [r for r in results if r.is_success]
    failed = [r for r in results if not r.is_success]
    assert len(succeeded) == 1
    assert isinstance(failed[0].error, DuplicateAssignmentError)
    assert len(assignments.list_user_assignments(USER)) == 1


# ------------------------------------------------------------------
# Cancellation
# ------------------------------------------------------------------
def test_cancelled_interaction_writes_nothing(make_flow, assignments, progress, uow_factory):
    snapshot = make_flow([[article()]])
    (reading,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    cancel = threading.Event()
    cancel.set()

    result = progress.interact(assignment.id, reading.id, Interaction(InteractionType.START_READING), cancel=cancel)

    assert isinstance(result.error, OperationCancelledError)
    assert progress.get_component_progress(assignment.id, reading.id) is None
    assert assignments.get_assignment(assignment.id).unwrap().status == AssignmentStatus.ASSIGNED
    with uow_factory() as uow:
        assert uow.outbox.list_pending() == []


def test_cancelled_activation_leaves_the_draft_inactive(make_flow, flows):
    snapshot = make_flow([[article()]], activate=False)
    cancel = threading.Event()
    cancel.set()

    result = flows.activate_flow_version(snapshot.flow.id, ADMIN, cancel=cancel)

    assert isinstance(result.error, OperationCancelledError)
    reloaded = flows.get_snapshot(snapshot.flow.id).unwrap()
    assert not reloaded.flow.is_active
    assert reloaded.flow.activated_at is None
    assert not any(c.is_active for c in reloaded.components())
