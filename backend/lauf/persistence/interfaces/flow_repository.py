"""Abstract repository interfaces for the flow content tree."""
from __future__ import annotations
from abc import abstractmethod
from typing import List

from lauf.domain.flows.models import ComponentVersion, FlowStepVersion, FlowVersion
from lauf.persistence.interfaces.versioned_repository import VersionedRepository


class FlowRepository(VersionedRepository[FlowVersion]):

    @abstractmethod
    def list_latest(self) -> List[FlowVersion]:
        """Return the highest version of every flow, newest flow first."""
        ...


class StepRepository(VersionedRepository[FlowStepVersion]):

    @abstractmethod
    def list_by_flow_version(self, flow_version_id: str) -> List[FlowStepVersion]:
        """Return the steps owned by one flow version, ordered by order ASC."""
        ...


class ComponentRepository(VersionedRepository[ComponentVersion]):

    @abstractmethod
    def list_by_step_version(self, step_version_id: str) -> List[ComponentVersion]:
        """Return the components owned by one step version, ordered by order ASC."""
        ...

    @abstractmethod
    def list_by_flow_version(self, flow_version_id: str) -> List[ComponentVersion]:
        """Return every component under one flow version's steps."""
        ...
