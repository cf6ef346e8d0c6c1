"""SQLite implementations of the flow / step / component repositories."""
from __future__ import annotations
import json
from typing import List

from lauf.domain.flows.models import (
    ComponentType,
    ComponentVersion,
    ContentStatus,
    FlowSettings,
    FlowStatus,
    FlowStepVersion,
    FlowVersion,
)
from lauf.persistence.interfaces.flow_repository import ComponentRepository, FlowRepository, StepRepository
from lauf.persistence.repositories.sqlite.sqlite_base import SqliteVersionedRepository


class SqliteFlowRepository(SqliteVersionedRepository[FlowVersion], FlowRepository):
    table = "flow_versions"
    entity = "Flow"

    def _content_to_row(self, flow: FlowVersion) -> dict:
        return {
            "title": flow.title,
            "description": flow.description,
            "category": flow.category,
            "tags": json.dumps(flow.tags),
            "status": flow.status.value,
            "priority": flow.priority,
            "is_required": int(flow.is_required),
            "created_by": flow.created_by,
            "settings": json.dumps(flow.settings.to_dict()),
        }

    def _from_row(self, row) -> FlowVersion:
        return FlowVersion(
            **self._base_fields(row),
            title=row["title"],
            description=row["description"],
            category=row["category"],
            tags=json.loads(row["tags"] or "[]"),
            status=FlowStatus(row["status"]),
            priority=row["priority"],
            is_required=bool(row["is_required"]),
            created_by=row["created_by"],
            settings=FlowSettings.from_dict(json.loads(row["settings"] or "{}")),
        )

    def list_latest(self) -> List[FlowVersion]:
        rows = self._conn.execute(
            """
            SELECT f.* FROM flow_versions f
            JOIN (
                SELECT original_id, MAX(version) AS version
                FROM flow_versions GROUP BY original_id
            ) latest ON latest.original_id = f.original_id AND latest.version = f.version
            ORDER BY f.created_at DESC
            """
        ).fetchall()
        return [self._from_row(r) for r in rows]


class SqliteStepRepository(SqliteVersionedRepository[FlowStepVersion], StepRepository):
    table = "step_versions"
    entity = "FlowStep"

    def _content_to_row(self, step: FlowStepVersion) -> dict:
        return {
            "flow_version_id": step.flow_version_id,
            "step_order": step.order,
            "title": step.title,
            "description": step.description,
            "status": step.status.value,
        }

    def _from_row(self, row) -> FlowStepVersion:
        return FlowStepVersion(
            **self._base_fields(row),
            flow_version_id=row["flow_version_id"],
            order=row["step_order"],
            title=row["title"],
            description=row["description"],
            status=ContentStatus(row["status"]),
        )

    def list_by_flow_version(self, flow_version_id: str) -> List[FlowStepVersion]:
        rows = self._conn.execute(
            "SELECT * FROM step_versions WHERE flow_version_id = ? ORDER BY step_order ASC",
            (flow_version_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]


class SqliteComponentRepository(SqliteVersionedRepository[ComponentVersion], ComponentRepository):
    table = "component_versions"
    entity = "Component"

    def _content_to_row(self, component: ComponentVersion) -> dict:
        return {
            "step_version_id": component.step_version_id,
            "component_order": component.order,
            "title": component.title,
            "description": component.description,
            "component_type": component.component_type.value,
            "status": component.status.value,
            "is_required": int(component.is_required),
            "estimated_duration_minutes": component.estimated_duration_minutes,
            "settings": json.dumps(component.settings),
        }

    def _from_row(self, row) -> ComponentVersion:
        return ComponentVersion(
            **self._base_fields(row),
            step_version_id=row["step_version_id"],
            order=row["component_order"],
            title=row["title"],
            description=row["description"],
            component_type=ComponentType(row["component_type"]),
            status=ContentStatus(row["status"]),
            is_required=bool(row["is_required"]),
            estimated_duration_minutes=row["estimated_duration_minutes"],
            settings=json.loads(row["settings"] or "{}"),
        )

    def list_by_step_version(self, step_version_id: str) -> List[ComponentVersion]:
        rows = self._conn.execute(
            "SELECT * FROM component_versions WHERE step_version_id = ? ORDER BY component_order ASC",
            (step_version_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_by_flow_version(self, flow_version_id: str) -> List[ComponentVersion]:
        rows = self._conn.execute(
            """
            SELECT c.* FROM component_versions c
            JOIN step_versions s ON s.id = c.step_version_id
            WHERE s.flow_version_id = ?
            ORDER BY s.step_order ASC, c.component_order ASC
            """,
            (flow_version_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]
