from __future__ import annotations

import math
import secrets
from typing import Any, Mapping

from flask import current_app

from flowbuilder.context import RequestContext
from flowbuilder.db import INTEGRITY_ERRORS
from flowbuilder.domain.contracts import ServiceOutput
from flowbuilder.domain.inputs import (
    optional_text,
    parse_email,
    parse_supplier_create_input,
    required_text,
)
from flowbuilder.errors import (
    ConflictError,
    NotFoundError,
    PermissionError as AppPermissionError,
    ValidationError,
)
from flowbuilder.infrastructure.auth_repository import AuthRepository
from flowbuilder.infrastructure.repositories import CompanyRepository, SupplierRepository, UserRepository
from flowbuilder.policies import BUYER_ROLES, VALID_ROLES, require_roles
from flowbuilder.ui_strings import status_keys_for_group


def _profile_changes(payload: Mapping[str, Any], fields) -> dict:
    changes: dict = {}
    for key in fields:
        if key not in payload:
            continue
        if key == "name":
            changes[key] = required_text(payload.get(key), key)
        elif key == "email":
            changes[key] = parse_email(payload.get(key)) if optional_text(payload.get(key)) else None
        else:
            changes[key] = optional_text(payload.get(key))
    return changes


class CompanyService:
    """The acting company's profile, users and roles."""

    def __init__(self, auth_repository: AuthRepository | None = None) -> None:
        self.auth_repository = auth_repository or AuthRepository()

    def get_profile(self, db, ctx: RequestContext) -> ServiceOutput:
        companies = CompanyRepository(company_id=ctx.company_id)
        return ServiceOutput(payload={"company": companies.get_profile(db), "stats": companies.stats(db)})

    def update_profile(self, db, ctx: RequestContext, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, "admin")
        changes = _profile_changes(payload, CompanyRepository.EDITABLE_FIELDS)
        companies = CompanyRepository(company_id=ctx.company_id)
        companies.update_profile(db, changes)
        current_app.logger.info(
            "company_updated",
            extra={"company_id": ctx.company_id, "fields": sorted(changes)},
        )
        return self.get_profile(db, ctx)

    def list_roles(self, db) -> ServiceOutput:
        return ServiceOutput(payload={"items": self.auth_repository.list_roles(db)})

    def _role_id(self, db, raw_role: Any) -> int:
        role = str(raw_role or "").strip().lower()
        role_id = self.auth_repository.role_id(db, role) if role in VALID_ROLES else None
        if role_id is None:
            raise ValidationError(
                code="role_invalid",
                message_key="role_invalid",
                payload={"field": "role"},
                params={"role": role or "-"},
            )
        return role_id

    def list_users(self, db, ctx: RequestContext) -> ServiceOutput:
        require_roles(ctx, "admin")
        return ServiceOutput(payload={"items": UserRepository(company_id=ctx.company_id).list_users(db)})

    def get_user(self, db, ctx: RequestContext, user_id: int) -> ServiceOutput:
        require_roles(ctx, "admin")
        user = UserRepository(company_id=ctx.company_id).get_by_id(db, user_id)
        if not user:
            raise NotFoundError("user", user_id)
        return ServiceOutput(payload={"user": user})

    def create_user(self, db, ctx: RequestContext, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, "admin")
        name = required_text(payload.get("name"), "name")
        email = parse_email(payload.get("email"))
        password = str(payload.get("password") or "")
        if not password:
            raise ValidationError(code="field_required", payload={"field": "password"}, params={"field": "password"})
        role_id = self._role_id(db, payload.get("role") or "buyer")
        if self.auth_repository.email_exists(db, email):
            raise ConflictError(code="email_already_registered", payload={"field": "email"})

        users = UserRepository(company_id=ctx.company_id)
        try:
            user_id = users.create(db, name=name, email=email, password=password, role_id=role_id)
        except INTEGRITY_ERRORS:
            raise ConflictError(code="email_already_registered", payload={"field": "email"}) from None
        current_app.logger.info("user_created", extra={"company_id": ctx.company_id, "user_id": user_id})
        return ServiceOutput(payload={"user": users.get_by_id(db, user_id)}, status_code=201)

    def update_user(self, db, ctx: RequestContext, user_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, "admin")
        users = UserRepository(company_id=ctx.company_id)
        user = users.get_by_id(db, user_id)
        if not user:
            raise NotFoundError("user", user_id)

        changes: dict = {}
        if "name" in payload:
            changes["name"] = required_text(payload.get("name"), "name")
        if "email" in payload:
            email = parse_email(payload.get("email"))
            if email != user["email"] and self.auth_repository.email_exists(db, email):
                raise ConflictError(code="email_already_registered", payload={"field": "email"})
            changes["email"] = email
        if "role" in payload:
            changes["role_id"] = self._role_id(db, payload.get("role"))
        if payload.get("password"):
            changes["password"] = str(payload["password"])

        users.update(db, user_id, changes)
        current_app.logger.info(
            "user_updated",
            extra={"company_id": ctx.company_id, "user_id": user_id, "fields": sorted(changes)},
        )
        return ServiceOutput(payload={"user": users.get_by_id(db, user_id)})

    def delete_user(self, db, ctx: RequestContext, user_id: int) -> ServiceOutput:
        require_roles(ctx, "admin")
        users = UserRepository(company_id=ctx.company_id)
        if not users.get_by_id(db, user_id):
            raise NotFoundError("user", user_id)
        if user_id == ctx.user_id:
            raise ConflictError(code="user_delete_self", payload={"user_id": user_id})
        if users.count(db) <= 1:
            raise ConflictError(code="user_delete_last", payload={"user_id": user_id})
        if users.has_activity(db, user_id):
            raise ConflictError(code="user_has_activity", payload={"user_id": user_id})
        users.delete(db, user_id)
        current_app.logger.info("user_deleted", extra={"company_id": ctx.company_id, "user_id": user_id})
        return ServiceOutput(payload={"user_id": user_id, "deleted": True})


class SupplierService:
    """Supplier directory and the acting company's partnerships."""

    def __init__(self, auth_repository: AuthRepository | None = None) -> None:
        self.auth_repository = auth_repository or AuthRepository()

    def search(self, db, ctx: RequestContext, *, search: str = "", trade_specialty: str = "", page: Any = 1) -> ServiceOutput:
        page_size = int(current_app.config.get("SUPPLIER_PAGE_SIZE", 10))
        try:
            page_number = max(1, int(page or 1))
        except (TypeError, ValueError):
            page_number = 1
        suppliers = SupplierRepository(company_id=ctx.company_id)
        items, total = suppliers.search(
            db,
            search=search.strip(),
            trade_specialty=trade_specialty.strip(),
            limit=page_size,
            offset=(page_number - 1) * page_size,
        )
        return ServiceOutput(
            payload={
                "items": items,
                "total": total,
                "page": page_number,
                "page_size": page_size,
                "pages": max(1, math.ceil(total / page_size)),
                "trade_specialties": suppliers.trade_specialties(db),
            }
        )

    def _load(self, db, ctx: RequestContext, supplier_id: int) -> dict:
        supplier = SupplierRepository(company_id=ctx.company_id).get_by_id(db, supplier_id)
        if not supplier or supplier_id == ctx.company_id:
            raise NotFoundError("supplier", supplier_id)
        return supplier

    def _require_partner(self, db, ctx: RequestContext, supplier_id: int) -> dict:
        partnership = SupplierRepository(company_id=ctx.company_id).get_partnership(db, supplier_id)
        if not partnership:
            raise AppPermissionError(
                code="supplier_not_partner",
                message_key="supplier_not_partner",
                payload={"supplier_id": supplier_id},
            )
        return partnership

    def _require_managed(self, db, ctx: RequestContext, supplier_id: int) -> None:
        # Supplier profiles are shared; only the company that registered one may change it.
        if not SupplierRepository(company_id=ctx.company_id).is_managed(db, supplier_id):
            raise AppPermissionError(
                code="supplier_not_managed",
                message_key="supplier_not_managed",
                payload={"supplier_id": supplier_id},
            )

    def create_supplier(self, db, ctx: RequestContext, payload: Mapping[str, Any]) -> ServiceOutput:
        """Register a supplier company, partner with it and open a contact login.

        The generated temporary password is returned once and never stored in
        clear.
        """
        require_roles(ctx, *BUYER_ROLES)
        supplier_input = parse_supplier_create_input(payload)
        if self.auth_repository.email_exists(db, supplier_input.email):
            raise ConflictError(code="email_already_registered", payload={"field": "email"})
        role_id = self.auth_repository.role_id(db, "Supplier")
        temporary_password = secrets.token_urlsafe(9)

        suppliers = SupplierRepository(company_id=ctx.company_id)
        try:
            with db.transaction():
                supplier_id = self.auth_repository.create_company(
                    db,
                    name=supplier_input.name,
                    company_type="supplier",
                    address=supplier_input.address,
                    phone=supplier_input.phone,
                    email=supplier_input.email,
                    trade_specialty=supplier_input.trade_specialty,
                    description=supplier_input.description,
                    created_by_company_id=ctx.company_id,
                )
                suppliers.add_partnership(db, supplier_id, status="active", notes=supplier_input.notes)
                contact_id = self.auth_repository.create_user(
                    db,
                    company_id=supplier_id,
                    role_id=role_id,
                    name=supplier_input.contact_name,
                    email=supplier_input.email,
                    password=temporary_password,
                )
        except INTEGRITY_ERRORS:
            raise ConflictError(code="email_already_registered", payload={"field": "email"}) from None

        current_app.logger.info(
            "supplier_created",
            extra={"company_id": ctx.company_id, "supplier_id": supplier_id, "contact_user_id": contact_id},
        )
        return ServiceOutput(
            payload={
                "supplier": suppliers.get_by_id(db, supplier_id),
                "contact": {"id": contact_id, "email": supplier_input.email, "temporary_password": temporary_password},
            },
            status_code=201,
        )

    def get_supplier(self, db, ctx: RequestContext, supplier_id: int) -> ServiceOutput:
        supplier = self._load(db, ctx, supplier_id)
        suppliers = SupplierRepository(company_id=ctx.company_id)
        return ServiceOutput(
            payload={
                "supplier": supplier,
                "partnership": suppliers.get_partnership(db, supplier_id),
                "rfqs": suppliers.rfq_history(db, supplier_id),
                "quotes": suppliers.quote_history(db, supplier_id),
            }
        )

    def update_supplier(self, db, ctx: RequestContext, supplier_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        self._load(db, ctx, supplier_id)
        self._require_partner(db, ctx, supplier_id)
        self._require_managed(db, ctx, supplier_id)
        changes = _profile_changes(payload, SupplierRepository.EDITABLE_FIELDS)
        SupplierRepository(company_id=ctx.company_id).update(db, supplier_id, changes)
        current_app.logger.info(
            "supplier_updated",
            extra={"company_id": ctx.company_id, "supplier_id": supplier_id, "fields": sorted(changes)},
        )
        return self.get_supplier(db, ctx, supplier_id)

    def delete_supplier(self, db, ctx: RequestContext, supplier_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        self._load(db, ctx, supplier_id)
        self._require_partner(db, ctx, supplier_id)
        self._require_managed(db, ctx, supplier_id)
        suppliers = SupplierRepository(company_id=ctx.company_id)
        with db.transaction():
            active_quotes = suppliers.active_quote_count(db, supplier_id)
            if active_quotes:
                raise ConflictError(
                    code="supplier_has_active_quotes",
                    payload={"supplier_id": supplier_id, "active_quotes": active_quotes},
                )
            if suppliers.foreign_reference_count(db, supplier_id):
                raise ConflictError(code="supplier_shared", payload={"supplier_id": supplier_id})
            suppliers.delete(db, supplier_id)
        current_app.logger.info("supplier_deleted", extra={"company_id": ctx.company_id, "supplier_id": supplier_id})
        return ServiceOutput(payload={"supplier_id": supplier_id, "deleted": True})

    def add_partner(self, db, ctx: RequestContext, supplier_id: int, payload: Mapping[str, Any] | None = None) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        self._load(db, ctx, supplier_id)
        suppliers = SupplierRepository(company_id=ctx.company_id)
        if suppliers.get_partnership(db, supplier_id):
            raise ConflictError(code="supplier_already_partner", payload={"supplier_id": supplier_id})
        try:
            suppliers.add_partnership(db, supplier_id, notes=optional_text((payload or {}).get("notes")))
        except INTEGRITY_ERRORS:
            raise ConflictError(code="supplier_already_partner", payload={"supplier_id": supplier_id}) from None
        current_app.logger.info("partnership_created", extra={"company_id": ctx.company_id, "supplier_id": supplier_id})
        return ServiceOutput(payload={"partnership": suppliers.get_partnership(db, supplier_id)}, status_code=201)

    def remove_partner(self, db, ctx: RequestContext, supplier_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        self._load(db, ctx, supplier_id)
        self._require_partner(db, ctx, supplier_id)
        SupplierRepository(company_id=ctx.company_id).remove_partnership(db, supplier_id)
        current_app.logger.info("partnership_removed", extra={"company_id": ctx.company_id, "supplier_id": supplier_id})
        return ServiceOutput(payload={"supplier_id": supplier_id, "partnership": None})

    def update_partnership(self, db, ctx: RequestContext, supplier_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        self._load(db, ctx, supplier_id)
        partnership = self._require_partner(db, ctx, supplier_id)
        status = str(payload.get("status") or partnership["status"]).strip().lower()
        if status not in status_keys_for_group("partnership"):
            raise ValidationError(
                code="status_invalid",
                payload={"field": "status", "status": status},
                params={"status": status},
            )
        notes = optional_text(payload.get("notes")) if "notes" in payload else partnership["notes"]
        suppliers = SupplierRepository(company_id=ctx.company_id)
        suppliers.update_partnership(db, supplier_id, status=status, notes=notes)
        current_app.logger.info(
            "partnership_updated",
            extra={"company_id": ctx.company_id, "supplier_id": supplier_id, "status": status},
        )
        return ServiceOutput(payload={"partnership": suppliers.get_partnership(db, supplier_id)})
