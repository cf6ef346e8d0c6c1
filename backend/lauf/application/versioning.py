"""Generic versioned-entity manager: one activation discipline for every versioned type."""
from __future__ import annotations
import logging
from typing import Callable, Generic, Iterator, List, Optional

from lauf.application.transactions import UnitOfWorkFactory, run_in_transaction
from lauf.core import config
from lauf.domain.common.clock import utc_now
from lauf.domain.common.errors import ConcurrentActivationError, NoActiveVersionError, VersionNotFoundError
from lauf.domain.common.result import Result
from lauf.domain.versioning.rules import next_version_number, plan_activation
from lauf.persistence.interfaces.unit_of_work import UnitOfWork
from lauf.persistence.interfaces.versioned_repository import V, VersionedRepository

logger = logging.getLogger(__name__)

RepoSelector = Callable[[UnitOfWork], VersionedRepository]


class VersionHistory(Generic[V]):
    """
    All versions of one logical entity, ascending by version.

    Iterating reads the store page by page; every new iteration starts over
    from version 1 and sees versions added since the previous pass.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory, repo_of: RepoSelector, original_id: str, page_size: int):
        self._uow_factory = uow_factory
        self._repo_of = repo_of
        self.original_id = original_id
        self._page_size = max(page_size, 1)

    def __iter__(self) -> Iterator[V]:
        after = 0
        while True:
            with self._uow_factory() as uow:
                page = self._repo_of(uow).list_versions(self.original_id, after, self._page_size)
            yield from page
            if len(page) < self._page_size:
                return
            after = page[-1].version


class VersionedEntityManager(Generic[V]):
    """
    Create, activate and read versions of any VersionedEntity type.

    ``repo_of`` picks the matching repository off a unit of work, so the same
    manager serves flows, steps and components.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        repo_of: RepoSelector,
        entity_name: str,
        page_size: Optional[int] = None,
    ):
        self._uow_factory = uow_factory
        self._repo_of = repo_of
        self.entity_name = entity_name
        self._page_size = page_size or config.HISTORY_PAGE_SIZE

    # ------------------------------------------------------------------
    # Inside a caller's unit of work
    # ------------------------------------------------------------------
    def create_new_version_in(self, uow: UnitOfWork, original_id: str, **changes) -> Result[V]:
        repo = self._repo_of(uow)
        active = repo.get_active(original_id)
        if active is None:
            return Result.fail(NoActiveVersionError(self.entity_name, original_id))
        version = active.new_version(next_version_number(repo.get_latest_version_number(original_id)), **changes)
        repo.add(version)
        return Result.ok(version)

    def activate_in(self, uow: UnitOfWork, version_id: str) -> Result[List[V]]:
        """Flip ``version_id`` on and its siblings off; returns the rows written."""
        repo = self._repo_of(uow)
        target = repo.get_by_id(version_id)
        if target is None:
            return Result.fail(VersionNotFoundError(self.entity_name, version_id))

        siblings = repo.list_versions(target.original_id)
        # the loaded target must be the same object the plan flips on
        siblings = [s for s in siblings if s.id != target.id]
        plan = plan_activation(target, siblings, utc_now())
        if not plan.is_success:
            return plan

        # deactivations first: at most one active row per original_id, even mid-transaction
        for version in sorted(plan.value, key=lambda v: v.is_active):
            repo.update(version)
        return plan

    def deactivate_in(self, uow: UnitOfWork, version_id: str) -> Result[Optional[V]]:
        """Retire an active version without activating a successor."""
        repo = self._repo_of(uow)
        version = repo.get_by_id(version_id)
        if version is None:
            return Result.fail(VersionNotFoundError(self.entity_name, version_id))
        if not version.is_active:
            return Result.ok(None)
        now = utc_now()
        version.is_active = False
        version.updated_at = now
        version.on_deactivated(now)
        repo.update(version)
        return Result.ok(version)

    # ------------------------------------------------------------------
    # Own unit of work
    # ------------------------------------------------------------------
    def create_new_version(self, original_id: str, **changes) -> Result[V]:
        result = run_in_transaction(
            self._uow_factory,
            lambda uow: self.create_new_version_in(uow, original_id, **changes),
            f"create_new_version:{self.entity_name}",
        )
        if result.is_success:
            logger.info("%s '%s' drafted version %d", self.entity_name, original_id, result.value.version)
        return result

    def activate(self, version_id: str) -> Result[V]:
        """
        Activate one version atomically.

        Activation is not replayed on conflict: if another activation of the
        same logical entity commits first, this one fails so that two
        simultaneous activations never both succeed.
        """
        found = self.get_version(version_id)
        if not found.is_success:
            return found
        original_id = found.value.original_id

        def work(uow: UnitOfWork) -> Result[V]:
            plan = self.activate_in(uow, version_id)
            if not plan.is_success:
                return Result.fail(plan.error)
            return Result.ok(self._repo_of(uow).get_by_id(version_id))

        result = run_in_transaction(
            self._uow_factory,
            work,
            f"activate:{self.entity_name}",
            retry_limit=0,
            on_conflict=lambda conflict: ConcurrentActivationError(self.entity_name, original_id),
        )
        if result.is_success:
            logger.info("%s '%s' version %d activated", self.entity_name, result.value.original_id, result.value.version)
        return result

    def get_active(self, original_id: str) -> Result[V]:
        with self._uow_factory() as uow:
            active = self._repo_of(uow).get_active(original_id)
        if active is None:
            return Result.fail(NoActiveVersionError(self.entity_name, original_id))
        return Result.ok(active)

    def get_version(self, version_id: str) -> Result[V]:
        with self._uow_factory() as uow:
            version = self._repo_of(uow).get_by_id(version_id)
        if version is None:
            return Result.fail(VersionNotFoundError(self.entity_name, version_id))
        return Result.ok(version)

    def get_history(self, original_id: str) -> VersionHistory[V]:
        return VersionHistory(self._uow_factory, self._repo_of, original_id, self._page_size)
