from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping

from flask import current_app

from flowbuilder.application.notification_service import NotificationService
from flowbuilder.context import RequestContext
from flowbuilder.domain.contracts import RfqInput, ServiceOutput
from flowbuilder.domain.inputs import format_timestamp, parse_rfq_input, parse_timestamp
from flowbuilder.domain.transitions import (
    RFQ_STATUSES,
    allowed_rfq_actions,
    can_delete_rfq,
    can_edit_rfq,
    can_transition_rfq,
    rfq_action_allowed,
)
from flowbuilder.errors import InvalidTransitionError, NotFoundError, ValidationError
from flowbuilder.infrastructure.repositories import (
    MaterialRepository,
    ProjectRepository,
    QuoteRepository,
    RfqRepository,
    StatusEventRepository,
    SupplierRepository,
)
from flowbuilder.policies import BUYER_ROLES, require_roles


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def days_until(deadline: Any, now: datetime) -> int | None:
    parsed = parse_timestamp(deadline)
    if parsed is None:
        return None
    return math.ceil((parsed - now).total_seconds() / 86400)


def _rfq_transition_error(rfq: Mapping[str, Any], requested: str, message_key: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        message_key=message_key,
        payload={"rfq_id": rfq["id"], "current_status": rfq["status"], "requested_status": requested},
        params={"current": rfq["status"], "requested": requested},
    )


def _rfq_action_error(rfq: Mapping[str, Any], action: str, message_key: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        message_key=message_key,
        payload={"rfq_id": rfq["id"], "current_status": rfq["status"], "action": action},
    )


class RfqService:
    """RFQ lifecycle: draft -> open -> closed, with supplier invitation tracking."""

    def __init__(
        self,
        notification_service: NotificationService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.notification_service = notification_service or NotificationService()
        self.clock = clock or _utc_now

    def _load_owned(self, db, ctx: RequestContext, rfq_id: int) -> dict:
        rfq = RfqRepository(company_id=ctx.company_id).get_by_id(db, rfq_id)
        if not rfq:
            raise NotFoundError("rfq", rfq_id)
        return rfq

    def _validate_references(self, db, ctx: RequestContext, rfq_input: RfqInput) -> None:
        material_ids = [line.material_id for line in rfq_input.materials]
        known_materials = MaterialRepository(company_id=ctx.company_id).existing_ids(db, material_ids)
        for material_id in material_ids:
            if material_id not in known_materials:
                raise ValidationError(
                    code="material_not_in_catalog",
                    message_key="material_not_in_catalog",
                    payload={"field": "materials", "material_id": material_id},
                    params={"material_id": material_id},
                )

        supplier_ids = list(rfq_input.suppliers)
        known_suppliers = SupplierRepository(company_id=ctx.company_id).existing_ids(db, supplier_ids)
        for supplier_id in supplier_ids:
            if supplier_id not in known_suppliers:
                raise ValidationError(
                    code="supplier_not_found",
                    message_key="supplier_not_found",
                    payload={"field": "suppliers", "company_id": supplier_id},
                    params={"company_id": supplier_id},
                )

    def create_rfq(self, db, ctx: RequestContext, *, project_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        if not ProjectRepository(company_id=ctx.company_id).get_by_id(db, project_id):
            raise NotFoundError("project", project_id)

        rfq_input = parse_rfq_input(payload, now=self.clock())
        self._validate_references(db, ctx, rfq_input)

        rfqs = RfqRepository(company_id=ctx.company_id)
        with db.transaction():
            rfq_id = rfqs.create(
                db,
                project_id=project_id,
                name=rfq_input.name,
                description=rfq_input.description,
                deadline=rfq_input.deadline,
                created_by=ctx.user_id,
            )
            rfqs.replace_materials(db, rfq_id, rfq_input.materials)
            rfqs.replace_suppliers(db, rfq_id, rfq_input.suppliers)
            StatusEventRepository(company_id=ctx.company_id).add_event(
                db,
                entity="rfq",
                entity_id=rfq_id,
                from_status=None,
                to_status="draft",
                reason="rfq_created",
                user_id=ctx.user_id,
            )

        current_app.logger.info(
            "rfq_created",
            extra={
                "rfq_id": rfq_id,
                "project_id": project_id,
                "company_id": ctx.company_id,
                "materials": len(rfq_input.materials),
                "suppliers": len(rfq_input.suppliers),
            },
        )
        return ServiceOutput(payload=self._detail_payload(db, ctx, rfqs.get_by_id(db, rfq_id)), status_code=201)

    def update_rfq(self, db, ctx: RequestContext, *, rfq_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        rfq = self._load_owned(db, ctx, rfq_id)
        if not can_edit_rfq(rfq["status"]):
            raise _rfq_action_error(rfq, "edit", "rfq_not_draft_edit")

        rfq_input = parse_rfq_input(payload, now=self.clock())
        self._validate_references(db, ctx, rfq_input)

        rfqs = RfqRepository(company_id=ctx.company_id)
        with db.transaction():
            rfqs.update_header(
                db,
                rfq_id,
                name=rfq_input.name,
                description=rfq_input.description,
                deadline=rfq_input.deadline,
            )
            rfqs.replace_materials(db, rfq_id, rfq_input.materials)
            rfqs.replace_suppliers(db, rfq_id, rfq_input.suppliers)

        current_app.logger.info("rfq_updated", extra={"rfq_id": rfq_id, "company_id": ctx.company_id})
        return ServiceOutput(payload=self._detail_payload(db, ctx, rfqs.get_by_id(db, rfq_id)))

    def distribute_rfq(self, db, ctx: RequestContext, *, rfq_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        rfq = self._load_owned(db, ctx, rfq_id)
        if not can_transition_rfq(rfq["status"], "open"):
            raise _rfq_transition_error(rfq, "open", "rfq_not_draft_distribute")

        rfqs = RfqRepository(company_id=ctx.company_id)
        material_count, supplier_count = rfqs.count_lines(db, rfq_id)
        if material_count == 0 or supplier_count == 0:
            raise ValidationError(
                code="rfq_distribution_incomplete",
                message_key="rfq_distribution_incomplete",
                payload={"rfq_id": rfq_id, "materials": material_count, "suppliers": supplier_count},
            )

        notified_at = format_timestamp(self.clock())
        with db.transaction():
            if not rfqs.transition_status(db, rfq_id, from_status="draft", to_status="open"):
                raise _rfq_transition_error(self._load_owned(db, ctx, rfq_id), "open", "rfq_not_draft_distribute")
            rfqs.mark_suppliers_notified(db, rfq_id, notified_at=notified_at)
            StatusEventRepository(company_id=ctx.company_id).add_event(
                db,
                entity="rfq",
                entity_id=rfq_id,
                from_status="draft",
                to_status="open",
                reason="rfq_distributed",
                user_id=ctx.user_id,
            )

        suppliers = rfqs.list_suppliers(db, rfq_id)
        current_app.logger.info(
            "rfq_distributed",
            extra={"rfq_id": rfq_id, "company_id": ctx.company_id, "suppliers": len(suppliers)},
        )
        for supplier in suppliers:
            self.notification_service.fan_out(
                db,
                ctx,
                recipient_company_id=int(supplier["company_id"]),
                kind="rfq_invite",
                reference_id=rfq_id,
                name=rfq["name"],
            )
        return ServiceOutput(
            payload={
                "rfq_id": rfq_id,
                "status": "open",
                "notified_at": notified_at,
                "suppliers": suppliers,
            }
        )

    def close_rfq(self, db, ctx: RequestContext, *, rfq_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        rfq = self._load_owned(db, ctx, rfq_id)
        if not can_transition_rfq(rfq["status"], "closed"):
            raise _rfq_transition_error(rfq, "closed", "rfq_not_open_close")

        rfqs = RfqRepository(company_id=ctx.company_id)
        with db.transaction():
            if not rfqs.transition_status(db, rfq_id, from_status="open", to_status="closed"):
                raise _rfq_transition_error(self._load_owned(db, ctx, rfq_id), "closed", "rfq_not_open_close")
            StatusEventRepository(company_id=ctx.company_id).add_event(
                db,
                entity="rfq",
                entity_id=rfq_id,
                from_status="open",
                to_status="closed",
                reason="rfq_closed",
                user_id=ctx.user_id,
            )
        current_app.logger.info("rfq_closed", extra={"rfq_id": rfq_id, "company_id": ctx.company_id})
        return ServiceOutput(payload={"rfq_id": rfq_id, "status": "closed"})

    def delete_rfq(self, db, ctx: RequestContext, *, rfq_id: int) -> ServiceOutput:
        require_roles(ctx, *BUYER_ROLES)
        rfq = self._load_owned(db, ctx, rfq_id)
        if not can_delete_rfq(rfq["status"]):
            raise _rfq_action_error(rfq, "delete", "rfq_not_draft_delete")
        with db.transaction():
            RfqRepository(company_id=ctx.company_id).delete(db, rfq_id)
        current_app.logger.info("rfq_deleted", extra={"rfq_id": rfq_id, "company_id": ctx.company_id})
        return ServiceOutput(payload={"rfq_id": rfq_id, "deleted": True})

    def get_rfq(self, db, ctx: RequestContext, *, rfq_id: int) -> ServiceOutput:
        rfqs = RfqRepository(company_id=ctx.company_id)
        rfq = rfqs.get_by_id(db, rfq_id)
        if rfq:
            return ServiceOutput(payload=self._detail_payload(db, ctx, rfq))

        invited = rfqs.get_for_supplier(db, rfq_id)
        if not invited:
            raise NotFoundError("rfq", rfq_id)
        own_quote = QuoteRepository(company_id=ctx.company_id).find_own_for_rfq(db, rfq_id)
        now = self.clock()
        return ServiceOutput(
            payload={
                "rfq": invited,
                "view": "supplier",
                "materials": rfqs.list_materials(db, rfq_id),
                "quote": own_quote,
                "can_submit_quote": (
                    own_quote is None
                    and rfq_action_allowed(invited["status"], "submit_quote")
                    and (parse_timestamp(invited["deadline"]) or now) > now
                ),
            }
        )

    def _detail_payload(self, db, ctx: RequestContext, rfq: Dict[str, Any]) -> Dict[str, Any]:
        rfqs = RfqRepository(company_id=ctx.company_id)
        quotes = QuoteRepository(company_id=ctx.company_id).list_for_rfq_with_items(db, rfq["id"])
        history = StatusEventRepository(company_id=ctx.company_id).list_for_entity(db, entity="rfq", entity_id=rfq["id"])
        return {
            "rfq": rfq,
            "view": "buyer",
            "materials": rfqs.list_materials(db, rfq["id"]),
            "suppliers": rfqs.list_suppliers(db, rfq["id"]),
            "quote_count": len(quotes),
            "allowed_actions": allowed_rfq_actions(rfq["status"]),
            "history": history,
        }

    def suppliers_status(self, db, ctx: RequestContext, *, rfq_id: int) -> ServiceOutput:
        rfq = self._load_owned(db, ctx, rfq_id)
        suppliers = RfqRepository(company_id=ctx.company_id).list_suppliers(db, rfq_id)
        counts = {"invited": 0, "pending": 0, "submitted": 0, "declined": 0}
        for supplier in suppliers:
            counts[supplier["status"]] = counts.get(supplier["status"], 0) + 1
        total = len(suppliers)
        return ServiceOutput(
            payload={
                "rfq_id": rfq_id,
                "rfq_status": rfq["status"],
                "suppliers": suppliers,
                "counts": counts,
                "total_suppliers": total,
                "response_rate": round_half_up(counts["submitted"] / total * 100) if total else 0,
            }
        )

    def compare_quotes(self, db, ctx: RequestContext, *, rfq_id: int) -> ServiceOutput:
        """Side-by-side view of every quote on one RFQ, cheapest first."""
        rfq = self._load_owned(db, ctx, rfq_id)
        rfqs = RfqRepository(company_id=ctx.company_id)
        quotes = QuoteRepository(company_id=ctx.company_id).list_for_rfq_with_items(db, rfq_id)
        for quote in quotes:
            quote["total"] = round(sum(float(item["price"]) * float(item["quantity"]) for item in quote["items"]), 2)
        quotes.sort(key=lambda quote: (quote["total"], quote["id"]))
        if quotes:
            quotes[0]["is_lowest"] = True
            for quote in quotes[1:]:
                quote["is_lowest"] = False

        suppliers = rfqs.list_suppliers(db, rfq_id)
        pending = [supplier for supplier in suppliers if supplier["status"] == "pending"]
        total_suppliers = len(suppliers)
        received = len(quotes)
        return ServiceOutput(
            payload={
                "rfq": rfq,
                "materials": rfqs.list_materials(db, rfq_id),
                "quotes": quotes,
                "pending_suppliers": pending,
                "total_suppliers": total_suppliers,
                "quotes_received": received,
                "response_rate": round_half_up(received / total_suppliers * 100) if total_suppliers else 0,
                "days_until_deadline": days_until(rfq["deadline"], self.clock()),
            }
        )

    def list_project_rfqs(
        self,
        db,
        ctx: RequestContext,
        *,
        project_id: int,
        search: str = "",
        status: str = "",
        sort: str = "newest",
    ) -> ServiceOutput:
        project = ProjectRepository(company_id=ctx.company_id).get_by_id(db, project_id)
        if not project:
            raise NotFoundError("project", project_id)
        status = status if status in RFQ_STATUSES else ""
        sort = sort if sort in RfqRepository.SORT_KEYS else "newest"
        rfqs = RfqRepository(company_id=ctx.company_id)
        items = rfqs.list_for_project(db, project_id, search=search, status=status, sort=sort)
        now = self.clock()
        for item in items:
            item["days_until_deadline"] = days_until(item["deadline"], now)
        return ServiceOutput(
            payload={
                "project": project,
                "items": items,
                "status_counts": rfqs.status_counts(db, project_id),
                "filters": {"search": search, "status": status or "all", "sort": sort},
            }
        )

    def list_supplier_rfqs(self, db, ctx: RequestContext, *, status: str = "") -> ServiceOutput:
        status = status if status in RFQ_STATUSES else ""
        items = RfqRepository(company_id=ctx.company_id).list_for_supplier(db, status=status)
        now = self.clock()
        for item in items:
            item["days_until_deadline"] = days_until(item["deadline"], now)
        return ServiceOutput(payload={"items": items})
