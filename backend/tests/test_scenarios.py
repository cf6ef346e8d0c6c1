"""End-to-end flows through the application services."""
from conftest import ADMIN, BUDDY, USER, article, of_type, quiz

from lauf.application.assignment_app_service import AssignmentAppService
from lauf.domain.assignments.models import AssignmentStatus
from lauf.domain.assignments.rules import add_working_days
from lauf.domain.common.errors import (
    ComponentNotInSnapshotError,
    DuplicateAssignmentError,
    InvalidTransitionError,
    NoActiveVersionError,
    StaleInteractionError,
    StepLockedError,
    ValidationError,
)
from lauf.domain.progress.models import Interaction, InteractionType, ProgressStatus


def _act(progress, assignment, component, kind, **kwargs):
    return progress.interact(assignment.id, component.id, Interaction(kind, **kwargs))


# ------------------------------------------------------------------
# Completion
# ------------------------------------------------------------------
def test_article_then_quiz_completes_the_flow(make_flow, assignments, progress, events):
    snapshot = make_flow([[article(), quiz(passing_score=70)]])
    reading, test = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN, buddy_id=BUDDY).unwrap()
    assert assignment.flow_version_id == snapshot.flow.id

    started = _act(progress, assignment, reading, InteractionType.START_READING).unwrap()
    assert started.assignment.status == AssignmentStatus.IN_PROGRESS
    assert started.assignment.progress_percent == 0

    read = _act(progress, assignment, reading, InteractionType.FINISH_READING, time_spent_seconds=240).unwrap()
    assert read.assignment.progress_percent == 50
    assert read.progress.status == ProgressStatus.COMPLETED
    assert [e.event_type for e in read.events] == ["ComponentCompleted"]

    passed = _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=85).unwrap()
    assert passed.assignment.status == AssignmentStatus.COMPLETED
    assert passed.assignment.progress_percent == 100
    assert passed.flow_progress.is_completed
    assert [e.event_type for e in passed.events] == ["StepCompleted", "FlowCompleted", "ComponentCompleted"]

    stored = assignments.get_assignment(assignment.id).unwrap()
    assert (stored.status, stored.progress_percent) == (AssignmentStatus.COMPLETED, 100)
    assert stored.completed_at is not None

    completed = of_type(events, "ComponentCompleted")
    assert [e.component_version_id for e in completed] == [reading.id, test.id]
    assert [(e.flow_progress_before, e.flow_progress_after) for e in completed] == [(0, 50), (50, 100)]
    assert completed[1].score == 85 and completed[1].passed is True

    finished = of_type(events, "FlowCompleted")
    assert len(finished) == 1
    assert finished[0].buddy_id == BUDDY
    assert finished[0].completed_on_time
    assert len(of_type(events, "FlowAssigned")) == 1


def test_failed_quiz_keeps_component_in_progress(make_flow, assignments, progress, events):
    snapshot = make_flow([[quiz(passing_score=70)]])
    (test,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    failed = _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=40).unwrap()

    assert failed.progress.status == ProgressStatus.IN_PROGRESS
    assert failed.progress.attempts == 2
    assert failed.progress.passed is False
    assert failed.events == []
    assert failed.assignment.status == AssignmentStatus.IN_PROGRESS
    assert failed.assignment.progress_percent == 0
    assert of_type(events, "ComponentCompleted") == []


def test_completing_a_step_unlocks_the_next_one(make_flow, assignments, progress, events):
    snapshot = make_flow([[article()], [article("Team wiki")]])
    first, second = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    _act(progress, assignment, first, InteractionType.START_READING).unwrap()
    done = _act(progress, assignment, first, InteractionType.FINISH_READING).unwrap()

    assert [e.event_type for e in done.events] == ["StepCompleted", "StepUnlocked", "ComponentCompleted"]
    unlocked = of_type(done.events, "StepUnlocked")[0]
    assert unlocked.step_version_id == snapshot.steps[1].step.id
    assert unlocked.is_last_step
    assert [s.is_unlocked for s in done.flow_progress.steps] == [True, True]

    assert _act(progress, assignment, second, InteractionType.START_READING).is_success


def test_progress_percentage_never_decreases(make_flow, assignments, progress):
    snapshot = make_flow([[article("One"), article("Two"), article("Three")]])
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    seen = []
    for component in snapshot.components():
        _act(progress, assignment, component, InteractionType.START_READING).unwrap()
        seen.append(assignments.get_assignment(assignment.id).unwrap().progress_percent)
        _act(progress, assignment, component, InteractionType.FINISH_READING).unwrap()
        seen.append(assignments.get_assignment(assignment.id).unwrap().progress_percent)

    assert seen == [0, 33, 33, 67, 67, 100]
    assert seen == sorted(seen)


# ------------------------------------------------------------------
# Rejections
# ------------------------------------------------------------------
def test_locked_step_rejects_interaction_without_writing(make_flow, assignments, progress):
    snapshot = make_flow([[article()], [quiz()]])
    later = snapshot.steps[1].components[0]
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    result = _act(progress, assignment, later, InteractionType.SUBMIT_QUIZ_ANSWER, score=100)

    assert isinstance(result.error, StepLockedError)
    assert result.error.context["order"] == 2
    assert progress.get_component_progress(assignment.id, later.id) is None
    assert assignments.get_assignment(assignment.id).unwrap().status == AssignmentStatus.ASSIGNED


def test_viewing_a_locked_step_is_a_no_op(make_flow, assignments, progress):
    snapshot = make_flow([[article()], [article("Team wiki")]])
    later = snapshot.steps[1].components[0]
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    viewed = _act(progress, assignment, later, InteractionType.VIEW).unwrap()

    assert not viewed.changed
    assert progress.get_component_progress(assignment.id, later.id) is None


def test_buddy_equal_to_assignee_fails_before_touching_the_store():
    def no_store():
        raise AssertionError("the store must not be opened")

    service = AssignmentAppService(no_store)
    result = service.assign_flow(USER, "any-flow", ADMIN, buddy_id=USER)

    assert isinstance(result.error, ValidationError)
    assert result.error.field == "buddy_id"


def test_assigning_a_flow_without_active_version(make_flow, assignments):
    snapshot = make_flow([[article()]], activate=False)
    result = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN)
    assert isinstance(result.error, NoActiveVersionError)


def test_duplicate_open_assignment_is_rejected(make_flow, assignments):
    snapshot = make_flow([[article()]])
    flow_id = snapshot.flow.original_id
    first = assignments.assign_flow(USER, flow_id, ADMIN).unwrap()

    duplicate = assignments.assign_flow(USER, flow_id, ADMIN)
    assert isinstance(duplicate.error, DuplicateAssignmentError)

    assignments.cancel_assignment(first.id, ADMIN).unwrap()
    again = assignments.assign_flow(USER, flow_id, ADMIN).unwrap()
    assert again.id != first.id
    assert len(assignments.list_user_assignments(USER)) == 2


def test_interaction_after_completion_is_stale(make_flow, assignments, progress):
    snapshot = make_flow([[article()]])
    (reading,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    _act(progress, assignment, reading, InteractionType.START_READING).unwrap()
    _act(progress, assignment, reading, InteractionType.FINISH_READING).unwrap()

    result = _act(progress, assignment, reading, InteractionType.FINISH_READING)
    assert isinstance(result.error, StaleInteractionError)
    assert result.error.context["entity_id"] == assignment.id


def test_interaction_inside_a_completed_step_is_stale(make_flow, assignments, progress):
    snapshot = make_flow([[article()], [article("Team wiki")]])
    first = snapshot.steps[0].components[0]
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    _act(progress, assignment, first, InteractionType.START_READING).unwrap()
    _act(progress, assignment, first, InteractionType.FINISH_READING).unwrap()

    result = _act(progress, assignment, first, InteractionType.VIEW)
    assert isinstance(result.error, StaleInteractionError)
    assert result.error.context["entity_id"] == snapshot.steps[0].step.id


def test_retry_on_a_completed_flow_is_practice(make_flow, assignments, progress):
    snapshot = make_flow([[quiz(passing_score=70)]], settings={"allow_retry": True})
    (test,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=90).unwrap()

    retried = _act(progress, assignment, test, InteractionType.RETRY).unwrap()

    assert retried.progress.status == ProgressStatus.IN_PROGRESS
    assert retried.progress.best_score == 90
    assert retried.assignment.status == AssignmentStatus.COMPLETED
    assert retried.assignment.progress_percent == 100


def test_practice_after_retry_can_be_finished(make_flow, assignments, progress, events):
    snapshot = make_flow([[quiz(passing_score=70)]], settings={"allow_retry": True})
    (test,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=90).unwrap()
    _act(progress, assignment, test, InteractionType.RETRY).unwrap()

    resubmitted = _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=95).unwrap()

    assert resubmitted.progress.status == ProgressStatus.COMPLETED
    assert resubmitted.progress.best_score == 95
    assert resubmitted.assignment.status == AssignmentStatus.COMPLETED
    assert resubmitted.assignment.progress_percent == 100
    assert [e.event_type for e in resubmitted.events] == ["ComponentCompleted"]
    assert len(of_type(events, "FlowCompleted")) == 1
    assert len(of_type(events, "StepCompleted")) == 1

    again = _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=100)
    assert isinstance(again.error, StaleInteractionError)


# ------------------------------------------------------------------
# Optional content
# ------------------------------------------------------------------
def test_flow_without_required_components_completes_on_first_interaction(make_flow, assignments, progress, events):
    snapshot = make_flow([[article(is_required=False)]])
    (reading,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()
    assert progress.get_flow_progress(assignment.id).unwrap().percent == 100

    started = _act(progress, assignment, reading, InteractionType.START_READING).unwrap()

    assert started.assignment.status == AssignmentStatus.COMPLETED
    assert started.assignment.progress_percent == 100
    assert [e.event_type for e in started.events] == ["FlowCompleted"]

    finished = _act(progress, assignment, reading, InteractionType.FINISH_READING).unwrap()
    assert finished.progress.status == ProgressStatus.COMPLETED
    assert [e.event_type for e in finished.events] == ["ComponentCompleted"]
    assert len(of_type(events, "FlowCompleted")) == 1

    stored = assignments.get_assignment(assignment.id).unwrap()
    assert (stored.status, stored.progress_percent) == (AssignmentStatus.COMPLETED, 100)


def test_step_without_required_components_stays_interactive(make_flow, assignments, progress):
    snapshot = make_flow([[article("Optional extras", is_required=False)], [quiz(passing_score=70)]])
    extra = snapshot.steps[0].components[0]
    test = snapshot.steps[1].components[0]
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    _act(progress, assignment, extra, InteractionType.START_READING).unwrap()
    read = _act(progress, assignment, extra, InteractionType.FINISH_READING).unwrap()

    assert read.progress.status == ProgressStatus.COMPLETED
    assert read.assignment.status == AssignmentStatus.IN_PROGRESS
    assert read.assignment.progress_percent == 0
    assert [e.event_type for e in read.events] == ["ComponentCompleted"]

    passed = _act(progress, assignment, test, InteractionType.SUBMIT_QUIZ_ANSWER, score=90).unwrap()
    assert passed.assignment.status == AssignmentStatus.COMPLETED
    assert passed.assignment.progress_percent == 100


# ------------------------------------------------------------------
# Snapshot binding
# ------------------------------------------------------------------
def test_assignment_stays_on_its_version_after_a_new_activation(make_flow, flows, assignments, progress):
    v1 = make_flow([[article()]])
    flow_id = v1.flow.original_id
    assignment = assignments.assign_flow(USER, flow_id, ADMIN).unwrap()

    v2 = flows.draft_new_version(flow_id, ADMIN).unwrap()
    flows.add_component(flows.get_snapshot(v2.id).unwrap().steps[0].step.id, quiz()).unwrap()
    flows.activate_flow_version(v2.id, ADMIN).unwrap()
    v2_snapshot = flows.get_snapshot(v2.id).unwrap()

    stored = assignments.get_assignment(assignment.id).unwrap()
    assert stored.flow_version_id == v1.flow.id
    view = progress.get_flow_progress(assignment.id).unwrap()
    assert (view.flow_version_id, view.total_required) == (v1.flow.id, 1)

    foreign = _act(progress, assignment, v2_snapshot.components()[1], InteractionType.SUBMIT_QUIZ_ANSWER, score=90)
    assert isinstance(foreign.error, ComponentNotInSnapshotError)

    own = v1.components()[0]
    _act(progress, assignment, own, InteractionType.START_READING).unwrap()
    done = _act(progress, assignment, own, InteractionType.FINISH_READING).unwrap()
    assert done.assignment.status == AssignmentStatus.COMPLETED

    newcomer = assignments.assign_flow("user-2", flow_id, ADMIN).unwrap()
    assert newcomer.flow_version_id == v2.id


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------
def test_pause_blocks_interactions_until_resumed(make_flow, assignments, progress):
    snapshot = make_flow([[article()]])
    (reading,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    assert isinstance(assignments.pause_assignment(assignment.id).error, InvalidTransitionError)
    _act(progress, assignment, reading, InteractionType.START_READING).unwrap()

    assert assignments.pause_assignment(assignment.id).unwrap().status == AssignmentStatus.PAUSED
    blocked = _act(progress, assignment, reading, InteractionType.FINISH_READING)
    assert isinstance(blocked.error, InvalidTransitionError)

    assignments.resume_assignment(assignment.id).unwrap()
    assert _act(progress, assignment, reading, InteractionType.FINISH_READING).is_success


def test_cancel_assignment(make_flow, assignments, progress, events):
    snapshot = make_flow([[article()]])
    (reading,) = snapshot.components()
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    cancelled = assignments.cancel_assignment(assignment.id, ADMIN).unwrap()
    assert cancelled.status == AssignmentStatus.CANCELLED
    assert of_type(events, "AssignmentCancelled")[0].cancelled_by == ADMIN

    result = _act(progress, assignment, reading, InteractionType.START_READING)
    assert isinstance(result.error, InvalidTransitionError)
    assert isinstance(assignments.cancel_assignment(assignment.id, ADMIN).error, InvalidTransitionError)


def test_default_deadline_counts_working_days(make_flow, assignments):
    snapshot = make_flow([[article()]], settings={"time_to_complete_working_days": 5})
    assignment = assignments.assign_flow(USER, snapshot.flow.original_id, ADMIN).unwrap()

    assert assignment.deadline == add_working_days(assignment.assigned_at, 5)
    assert assignments.get_assignment(assignment.id).unwrap().deadline == assignment.deadline
    assert assignments.list_overdue(USER) == []
