"""Version manager + flow authoring against a real SQLite file."""
from conftest import ADMIN, article, flow_data, of_type, quiz

from lauf.domain.common.errors import (
    ConcurrentActivationError,
    ImmutableVersionError,
    NoActiveVersionError,
    ValidationError,
    VersionNotFoundError,
)
from lauf.domain.flows.models import ContentStatus, FlowStatus


def _active_count(uow_factory, table: str, original_id: str) -> int:
    with uow_factory() as uow:
        repo = getattr(uow, table)
        return sum(1 for v in repo.list_versions(original_id) if v.is_active)


def test_create_flow_starts_as_inactive_draft_version_one(flows):
    flow = flows.create_flow(ADMIN, flow_data()).unwrap()
    assert (flow.version, flow.is_active, flow.status) == (1, False, FlowStatus.DRAFT)
    assert flow.original_id == flow.id
    assert isinstance(flows.flow_versions.get_active(flow.id).error, NoActiveVersionError)


def test_create_flow_validates_before_persisting(flows):
    result = flows.create_flow(ADMIN, flow_data(title="no"))
    assert isinstance(result.error, ValidationError)
    assert flows.list_flows() == []


def test_activation_freezes_the_tree(flows, make_flow):
    snapshot = make_flow([[article()]])
    flow = snapshot.flow

    assert flow.is_active and flow.status == FlowStatus.ACTIVE
    assert snapshot.steps[0].step.status == ContentStatus.ACTIVE
    assert snapshot.steps[0].components[0].is_active

    assert isinstance(flows.add_step(flow.id, {"title": "Late"}).error, ImmutableVersionError)
    assert isinstance(flows.add_component(snapshot.steps[0].step.id, article()).error, ImmutableVersionError)
    assert isinstance(flows.update_flow(flow.id, {"title": "Renamed flow"}).error, ImmutableVersionError)


def test_activating_a_flow_without_steps_fails(flows):
    flow = flows.create_flow(ADMIN, flow_data()).unwrap()
    result = flows.activate_flow_version(flow.id, ADMIN)
    assert isinstance(result.error, ValidationError)


def test_activate_unknown_version(flows):
    assert isinstance(flows.activate_flow_version("missing", ADMIN).error, VersionNotFoundError)
    assert isinstance(flows.flow_versions.activate("missing").error, VersionNotFoundError)


def test_step_order_must_be_unique(flows):
    flow = flows.create_flow(ADMIN, flow_data()).unwrap()
    first = flows.add_step(flow.id, {"title": "One"}).unwrap()
    second = flows.add_step(flow.id, {"title": "Two"}).unwrap()
    assert (first.order, second.order) == (1, 2)
    assert isinstance(flows.add_step(flow.id, {"title": "Dup", "order": 2}).error, ValidationError)


def test_draft_new_version_copies_tree_and_activation_swaps_exactly_one(flows, make_flow, uow_factory, events):
    v1 = make_flow([[article(), quiz()], [article("Team wiki")]])
    flow_id = v1.flow.original_id

    v2 = flows.draft_new_version(flow_id, "editor").unwrap()
    assert (v2.version, v2.is_active, v2.status, v2.created_by) == (2, False, FlowStatus.DRAFT, "editor")

    draft = flows.get_snapshot(v2.id).unwrap()
    assert [n.step.title for n in draft.steps] == ["Step 1", "Step 2"]
    assert [c.title for c in draft.components()] == ["Read the handbook", "Handbook quiz", "Team wiki"]
    assert [n.step.original_id for n in draft.steps] == [n.step.original_id for n in v1.steps]
    assert all(c.version == 2 and not c.is_active for c in draft.components())

    # the draft is editable while v1 stays active
    flows.update_flow(v2.id, {"title": "Designer onboarding v2"}).unwrap()
    flows.add_component(draft.steps[1].step.id, quiz("Wiki quiz")).unwrap()
    assert flows.flow_versions.get_active(flow_id).unwrap().id == v1.flow.id

    flows.activate_flow_version(v2.id, ADMIN).unwrap()

    assert flows.flow_versions.get_active(flow_id).unwrap().id == v2.id
    assert _active_count(uow_factory, "flows", flow_id) == 1
    for node in draft.steps:
        assert _active_count(uow_factory, "steps", node.step.original_id) == 1
    for component in draft.components():
        assert _active_count(uow_factory, "components", component.original_id) == 1

    old = flows.get_snapshot(v1.flow.id).unwrap()
    assert old.flow.status == FlowStatus.ARCHIVED
    assert not any(c.is_active for c in old.components())

    activated = of_type(events, "FlowVersionActivated")
    assert [e.flow_version for e in activated] == [1, 2]
    assert activated[1].previous_version_id == v1.flow.id


def test_draft_requires_an_active_version(flows):
    flow = flows.create_flow(ADMIN, flow_data()).unwrap()
    assert isinstance(flows.draft_new_version(flow.original_id, ADMIN).error, NoActiveVersionError)


def test_reactivating_the_active_version_is_a_no_op(flows, make_flow, uow_factory):
    snapshot = make_flow([[article()]])
    again = flows.activate_flow_version(snapshot.flow.id, ADMIN).unwrap()
    assert again.id == snapshot.flow.id
    assert _active_count(uow_factory, "flows", snapshot.flow.original_id) == 1


def test_history_is_ordered_lazy_and_restartable(flows, make_flow, uow_factory):
    snapshot = make_flow([[article()]])
    flow_id = snapshot.flow.original_id
    flows.draft_new_version(flow_id, ADMIN).unwrap()

    history = flows.get_history(flow_id)
    assert [v.version for v in history] == [1, 2]

    flows.flow_versions.create_new_version(flow_id).unwrap()
    # a second pass starts over and sees the new version
    assert [v.version for v in history] == [1, 2, 3]


def test_history_pages_through_the_store(flows, make_flow, uow_factory):
    from lauf.application.versioning import VersionedEntityManager

    snapshot = make_flow([[article()]])
    flow_id = snapshot.flow.original_id
    for _ in range(4):
        flows.flow_versions.create_new_version(flow_id).unwrap()

    small_pages = VersionedEntityManager(uow_factory, lambda uow: uow.flows, "Flow", page_size=2)
    assert [v.version for v in small_pages.get_history(flow_id)] == [1, 2, 3, 4, 5]


def test_generic_manager_activates_components_independently(flows, make_flow, uow_factory):
    v1 = make_flow([[article()]])
    component = v1.components()[0]
    drafted = flows.draft_new_version(v1.flow.original_id, ADMIN).unwrap()
    copy = flows.get_snapshot(drafted.id).unwrap().components()[0]
    assert (copy.original_id, copy.version) == (component.original_id, 2)

    flows.component_versions.activate(copy.id).unwrap()

    assert flows.component_versions.get_active(component.original_id).unwrap().id == copy.id
    assert _active_count(uow_factory, "components", component.original_id) == 1
    # the frozen v1 tree still owns its own component version
    assert flows.get_snapshot(v1.flow.id).unwrap().components()[0].id == component.id


def test_concurrent_activation_only_one_wins(flows, make_flow, interleaving_factory, uow_factory):
    from lauf.application.flow_app_service import FlowAppService

    v1 = make_flow([[article()]])
    flow_id = v1.flow.original_id
    v2 = flows.draft_new_version(flow_id, ADMIN).unwrap()
    v3 = flows.draft_new_version(flow_id, ADMIN).unwrap()

    # v3's activation commits while v2's is between its reads and its first write
    racing = FlowAppService(interleaving_factory(
        "steps", "update", lambda: flows.activate_flow_version(v3.id, ADMIN).unwrap()
    ))
    result = racing.activate_flow_version(v2.id, ADMIN)

    assert isinstance(result.error, ConcurrentActivationError)
    assert flows.flow_versions.get_active(flow_id).unwrap().id == v3.id
    assert _active_count(uow_factory, "flows", flow_id) == 1
    assert not flows.get_snapshot(v2.id).unwrap().flow.is_active
