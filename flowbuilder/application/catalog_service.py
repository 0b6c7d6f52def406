from __future__ import annotations

from typing import Any, Mapping

from flask import current_app

from flowbuilder.context import RequestContext
from flowbuilder.db import INTEGRITY_ERRORS
from flowbuilder.domain.contracts import ServiceOutput
from flowbuilder.domain.inputs import optional_text, parse_optional_int, required_text
from flowbuilder.errors import ConflictError, NotFoundError, ValidationError
from flowbuilder.infrastructure.repositories import CategoryRepository, MaterialRepository
from flowbuilder.policies import BUYER_ROLES, require_roles


class CatalogService:
    """Materials and their categories, both owned by the acting company."""

    def _category_id(self, db, ctx: RequestContext, value: Any) -> int | None:
        category_id = parse_optional_int(value, "category_id")
        if category_id is not None and not CategoryRepository(company_id=ctx.company_id).get_by_id(db, category_id):
            raise ValidationError(payload={"field": "category_id"}, params={"field": "category_id"})
        return category_id

    def list_materials(self, db, ctx: RequestContext, *, search: str = "", category_id: Any = None) -> ServiceOutput:
        try:
            category_filter = parse_optional_int(category_id, "category_id")
        except ValidationError:
            category_filter = None
        items = MaterialRepository(company_id=ctx.company_id).search(
            db, search=search.strip(), category_id=category_filter
        )
        return ServiceOutput(
            payload={
                "items": items,
                "categories": CategoryRepository(company_id=ctx.company_id).list_all(db),
                "filters": {"search": search, "category_id": category_filter},
            }
        )

    def get_material(self, db, ctx: RequestContext, material_id: int) -> ServiceOutput:
        materials = MaterialRepository(company_id=ctx.company_id)
        material = materials.get_by_id(db, material_id)
        if not material:
            raise NotFoundError("material", material_id)
        return ServiceOutput(payload={"material": material, "rfqs": materials.rfq_usage(db, material_id)})

    def create_material(self, db, ctx: RequestContext, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        materials = MaterialRepository(company_id=ctx.company_id)
        material_id = materials.create(
            db,
            name=required_text(payload.get("name"), "name"),
            sku=optional_text(payload.get("sku")),
            unit=optional_text(payload.get("unit")),
            description=optional_text(payload.get("description")),
            category_id=self._category_id(db, ctx, payload.get("category_id")),
        )
        current_app.logger.info("material_created", extra={"company_id": ctx.company_id, "material_id": material_id})
        return ServiceOutput(payload={"material": materials.get_by_id(db, material_id)}, status_code=201)

    def update_material(self, db, ctx: RequestContext, material_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        materials = MaterialRepository(company_id=ctx.company_id)
        if not materials.get_by_id(db, material_id):
            raise NotFoundError("material", material_id)

        changes: dict = {}
        for key in MaterialRepository.EDITABLE_FIELDS:
            if key not in payload:
                continue
            if key == "name":
                changes[key] = required_text(payload.get(key), key)
            elif key == "category_id":
                changes[key] = self._category_id(db, ctx, payload.get(key))
            else:
                changes[key] = optional_text(payload.get(key))
        materials.update(db, material_id, changes)
        return ServiceOutput(payload={"material": materials.get_by_id(db, material_id)})

    def delete_material(self, db, ctx: RequestContext, material_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        materials = MaterialRepository(company_id=ctx.company_id)
        if not materials.get_by_id(db, material_id):
            raise NotFoundError("material", material_id)

        active = materials.active_rfq_count(db, material_id)
        if active:
            raise ConflictError(code="material_in_use", payload={"material_id": material_id, "active_rfqs": active})
        references = materials.reference_count(db, material_id)
        if references:
            raise ConflictError(
                code="material_referenced",
                payload={"material_id": material_id, "references": references},
            )
        try:
            materials.delete(db, material_id)
        except INTEGRITY_ERRORS:
            raise ConflictError(code="material_referenced", payload={"material_id": material_id}) from None
        current_app.logger.info("material_deleted", extra={"company_id": ctx.company_id, "material_id": material_id})
        return ServiceOutput(payload={"material_id": material_id, "deleted": True})

    def list_categories(self, db, ctx: RequestContext) -> ServiceOutput:
        return ServiceOutput(payload={"items": CategoryRepository(company_id=ctx.company_id).list_all(db)})

    def create_category(self, db, ctx: RequestContext, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        name = required_text(payload.get("name"), "name")
        categories = CategoryRepository(company_id=ctx.company_id)
        if categories.name_taken(db, name):
            raise ConflictError(code="category_name_taken", payload={"field": "name"})
        try:
            category_id = categories.create(db, name=name, description=optional_text(payload.get("description")))
        except INTEGRITY_ERRORS:
            raise ConflictError(code="category_name_taken", payload={"field": "name"}) from None
        return ServiceOutput(payload={"category": categories.get_by_id(db, category_id)}, status_code=201)

    def update_category(self, db, ctx: RequestContext, category_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        categories = CategoryRepository(company_id=ctx.company_id)
        category = categories.get_by_id(db, category_id)
        if not category:
            raise NotFoundError("category", category_id)
        name = required_text(payload.get("name", category["name"]), "name")
        if categories.name_taken(db, name, exclude_id=category_id):
            raise ConflictError(code="category_name_taken", payload={"field": "name"})
        description = optional_text(payload.get("description")) if "description" in payload else category["description"]
        categories.update(db, category_id, name=name, description=description)
        return ServiceOutput(payload={"category": categories.get_by_id(db, category_id)})

    def delete_category(self, db, ctx: RequestContext, category_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        categories = CategoryRepository(company_id=ctx.company_id)
        if not categories.get_by_id(db, category_id):
            raise NotFoundError("category", category_id)
        material_count = categories.material_count(db, category_id)
        if material_count:
            raise ConflictError(
                code="category_has_materials",
                payload={"category_id": category_id, "materials": material_count},
            )
        categories.delete(db, category_id)
        current_app.logger.info("category_deleted", extra={"company_id": ctx.company_id, "category_id": category_id})
        return ServiceOutput(payload={"category_id": category_id, "deleted": True})
