from __future__ import annotations

from typing import Any, Mapping

from flask import current_app

from flowbuilder.context import RequestContext
from flowbuilder.domain.contracts import ServiceOutput
from flowbuilder.domain.inputs import optional_text, required_text
from flowbuilder.errors import ConflictError, NotFoundError
from flowbuilder.infrastructure.repositories import ProjectRepository, PurchaseOrderRepository, RfqRepository
from flowbuilder.policies import BUYER_ROLES, require_roles


class ProjectService:
    def list_projects(self, db, ctx: RequestContext) -> ServiceOutput:
        return ServiceOutput(payload={"items": ProjectRepository(company_id=ctx.company_id).list_all(db)})

    def get_project(self, db, ctx: RequestContext, project_id: int) -> ServiceOutput:
        project = ProjectRepository(company_id=ctx.company_id).get_by_id(db, project_id)
        if not project:
            raise NotFoundError("project", project_id)
        rfqs = RfqRepository(company_id=ctx.company_id)
        return ServiceOutput(
            payload={
                "project": project,
                "rfqs": rfqs.list_for_project(db, project_id),
                "rfq_counts": rfqs.status_counts(db, project_id),
                "purchase_orders": PurchaseOrderRepository(company_id=ctx.company_id).list_visible(
                    db, project_id=project_id
                ),
            }
        )

    def create_project(self, db, ctx: RequestContext, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        projects = ProjectRepository(company_id=ctx.company_id)
        project_id = projects.create(
            db,
            name=required_text(payload.get("name"), "name"),
            description=optional_text(payload.get("description")),
        )
        current_app.logger.info("project_created", extra={"company_id": ctx.company_id, "project_id": project_id})
        return ServiceOutput(payload={"project": projects.get_by_id(db, project_id)}, status_code=201)

    def update_project(self, db, ctx: RequestContext, project_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        projects = ProjectRepository(company_id=ctx.company_id)
        if not projects.get_by_id(db, project_id):
            raise NotFoundError("project", project_id)
        changes: dict = {}
        if "name" in payload:
            changes["name"] = required_text(payload.get("name"), "name")
        if "description" in payload:
            changes["description"] = optional_text(payload.get("description"))
        projects.update(db, project_id, changes)
        return ServiceOutput(payload={"project": projects.get_by_id(db, project_id)})

    def delete_project(self, db, ctx: RequestContext, project_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        projects = ProjectRepository(company_id=ctx.company_id)
        if not projects.get_by_id(db, project_id):
            raise NotFoundError("project", project_id)
        blocking = projects.non_draft_rfq_count(db, project_id)
        if blocking:
            raise ConflictError(code="project_has_rfqs", payload={"project_id": project_id, "rfqs": blocking})
        with db.transaction():
            projects.delete(db, project_id)
        current_app.logger.info("project_deleted", extra={"company_id": ctx.company_id, "project_id": project_id})
        return ServiceOutput(payload={"project_id": project_id, "deleted": True})
