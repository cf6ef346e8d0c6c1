"""Shared fixtures: a throwaway SQLite database and the services wired onto it."""
from typing import Callable, List, Optional

import pytest

from lauf.application.assignment_app_service import AssignmentAppService
from lauf.application.event_dispatcher import LocalEventBus, OutboxDispatcher
from lauf.application.flow_app_service import FlowAppService
from lauf.application.progress_app_service import ProgressAppService
from lauf.core import config
from lauf.domain.events import DomainEvent
from lauf.persistence.db import init_db
from lauf.persistence.repositories.sqlite.sqlite_unit_of_work import SqliteUnitOfWork

ADMIN = "admin-1"
USER = "user-1"
BUDDY = "buddy-1"


class InterleavingUnitOfWork(SqliteUnitOfWork):
    """
    Runs ``hook`` once, right before the first call to ``repo.method``.

    The hook typically commits a competing write through a separate unit of
    work, which makes this unit's pending write stale.
    """

    def __init__(self, path: str, repo: str, method: str, hook: Callable[[], None], state: dict):
        super().__init__(path)
        self._repo_name = repo
        self._method_name = method
        self._hook = hook
        self._state = state

    def _begin(self) -> None:
        super()._begin()
        repo = getattr(self, self._repo_name)
        original = getattr(repo, self._method_name)

        def wrapped(*args, **kwargs):
            if not self._state.get("fired"):
                self._state["fired"] = True
                self._hook()
            return original(*args, **kwargs)

        setattr(repo, self._method_name, wrapped)


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "lauf.db")
    monkeypatch.setattr(config, "DATABASE_PATH", path)
    init_db(path)
    return path


@pytest.fixture
def uow_factory(db_path):
    return lambda: SqliteUnitOfWork(db_path)


@pytest.fixture
def interleaving_factory(db_path):
    def build(repo: str, method: str, hook: Callable[[], None]):
        state: dict = {}
        return lambda: InterleavingUnitOfWork(db_path, repo, method, hook, state)

    return build


@pytest.fixture
def events() -> List[DomainEvent]:
    return []


@pytest.fixture
def bus(events):
    bus = LocalEventBus()
    bus.subscribe("*", events.append)
    return bus


@pytest.fixture
def dispatcher(uow_factory, bus):
    return OutboxDispatcher(uow_factory, bus)


@pytest.fixture
def flows(uow_factory, dispatcher):
    return FlowAppService(uow_factory, dispatcher)


@pytest.fixture
def assignments(uow_factory, dispatcher):
    return AssignmentAppService(uow_factory, dispatcher)


@pytest.fixture
def progress(uow_factory, dispatcher):
    return ProgressAppService(uow_factory, dispatcher)


def flow_data(**overrides) -> dict:
    data = {
        "title": "Designer onboarding",
        "description": "First two weeks for new product designers.",
        "category": "onboarding",
        "tags": ["design", "week-1"],
        "priority": 5,
        "settings": {},
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_flow(flows):
    """
    Build and (optionally) activate a flow from a compact description.

    ``steps`` is a list of steps, each a list of component dicts, e.g.
    ``[[{"title": "Welcome", "component_type": "Article"}]]``.
    Returns the flow's snapshot.
    """

    def build(steps: List[List[dict]], settings: Optional[dict] = None, activate: bool = True, **flow_fields):
        flow = flows.create_flow(ADMIN, flow_data(settings=settings or {}, **flow_fields)).unwrap()
        for index, components in enumerate(steps, start=1):
            step = flows.add_step(flow.id, {"title": f"Step {index}"}).unwrap()
            for component in components:
                flows.add_component(step.id, component).unwrap()
        if activate:
            flows.activate_flow_version(flow.id, ADMIN).unwrap()
        return flows.get_snapshot(flow.id).unwrap()

    return build


def article(title: str = "Read the handbook", **extra) -> dict:
    return {"title": title, "component_type": "Article", **extra}


def quiz(title: str = "Handbook quiz", passing_score: int = 70, **extra) -> dict:
    settings = {"passing_score": passing_score, **extra.pop("settings", {})}
    return {"title": title, "component_type": "Quiz", "settings": settings, **extra}


def of_type(events: List[DomainEvent], name: str) -> List[DomainEvent]:
    return [e for e in events if e.event_type == name]
