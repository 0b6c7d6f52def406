from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from flask import current_app

from flowbuilder.application.notification_service import NotificationService
from flowbuilder.context import RequestContext
from flowbuilder.db import INTEGRITY_ERRORS
from flowbuilder.domain.contracts import QuoteInput, ServiceOutput
from flowbuilder.domain.inputs import format_timestamp, optional_text, parse_quote_input, parse_timestamp
from flowbuilder.domain.transitions import (
    QUOTE_STATUSES,
    quote_is_awardable,
    quote_is_mutable,
    rfq_action_allowed,
)
from flowbuilder.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionError as AppPermissionError,
    ValidationError,
)
from flowbuilder.infrastructure.repositories import (
    ProjectRepository,
    PurchaseOrderRepository,
    QuoteRepository,
    RfqRepository,
    StatusEventRepository,
)
from flowbuilder.policies import BUYER_ROLES, require_roles


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuoteService:
    """Supplier quotes on open RFQs and the award step that turns one into a PO."""

    def __init__(
        self,
        notification_service: NotificationService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.notification_service = notification_service or NotificationService()
        self.clock = clock or _utc_now

    def _check_lines_against_rfq(self, db, ctx: RequestContext, rfq_id: int, quote_input: QuoteInput) -> None:
        requested = {int(row["material_id"]) for row in RfqRepository(company_id=ctx.company_id).list_materials(db, rfq_id)}
        for line in quote_input.items:
            if line.material_id not in requested:
                raise ValidationError(
                    code="quote_item_not_in_rfq",
                    message_key="quote_item_not_in_rfq",
                    payload={"field": "items", "material_id": line.material_id},
                    params={"material_id": line.material_id},
                )

    def submit_quote(self, db, ctx: RequestContext, *, rfq_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        rfqs = RfqRepository(company_id=ctx.company_id)
        rfq = rfqs.get_for_supplier(db, rfq_id)
        if not rfq:
            if rfqs.get_by_id(db, rfq_id):
                raise AppPermissionError(
                    code="rfq_not_invited",
                    message_key="rfq_not_invited",
                    payload={"rfq_id": rfq_id},
                )
            raise NotFoundError("rfq", rfq_id)

        if not rfq_action_allowed(rfq["status"], "submit_quote"):
            raise ValidationError(
                code="rfq_not_accepting_quotes",
                message_key="rfq_not_accepting_quotes",
                payload={"rfq_id": rfq_id, "rfq_status": rfq["status"]},
            )
        now = self.clock()
        deadline = parse_timestamp(rfq["deadline"])
        if deadline is not None and deadline <= now:
            raise ValidationError(
                code="rfq_deadline_passed",
                message_key="rfq_deadline_passed",
                payload={"rfq_id": rfq_id, "deadline": rfq["deadline"]},
            )

        quotes = QuoteRepository(company_id=ctx.company_id)
        existing = quotes.find_own_for_rfq(db, rfq_id)
        if existing:
            raise ConflictError(
                code="quote_already_submitted",
                message_key="quote_already_submitted",
                payload={"rfq_id": rfq_id, "quote_id": existing["id"]},
            )
        if quotes.awarded_quote_id(db, rfq_id) is not None:
            raise ConflictError(code="rfq_already_awarded", payload={"rfq_id": rfq_id})

        quote_input = parse_quote_input(payload)
        self._check_lines_against_rfq(db, ctx, rfq_id, quote_input)

        try:
            with db.transaction():
                quote_id = quotes.create(
                    db,
                    rfq_id=rfq_id,
                    duration=quote_input.duration,
                    notes=quote_input.notes,
                    created_by=ctx.user_id,
                )
                quotes.replace_items(db, quote_id, quote_input.items)
                rfqs.mark_invite_submitted(db, rfq_id, responded_at=format_timestamp(now))
                StatusEventRepository(company_id=ctx.company_id).add_event(
                    db,
                    entity="quote",
                    entity_id=quote_id,
                    from_status=None,
                    to_status="submitted",
                    reason="quote_submitted",
                    user_id=ctx.user_id,
                )
        except INTEGRITY_ERRORS:
            # Unique (rfq_id, company_id) lost a race with a concurrent submission.
            current_app.logger.warning(
                "quote_submit_conflict",
                extra={"rfq_id": rfq_id, "company_id": ctx.company_id},
            )
            raise ConflictError(
                code="quote_already_submitted",
                message_key="quote_already_submitted",
                payload={"rfq_id": rfq_id},
            ) from None

        total = round(sum(line.total_price for line in quote_input.items), 2)
        current_app.logger.info(
            "quote_submitted",
            extra={
                "quote_id": quote_id,
                "rfq_id": rfq_id,
                "company_id": ctx.company_id,
                "items": len(quote_input.items),
                "total": total,
            },
        )
        return ServiceOutput(payload=self._detail_payload(db, ctx, quotes.get_by_id(db, quote_id)), status_code=201)

    def _load_own(self, db, ctx: RequestContext, quote_id: int) -> dict:
        quote = QuoteRepository(company_id=ctx.company_id).get_by_id(db, quote_id)
        if not quote or int(quote["company_id"]) != ctx.company_id:
            raise NotFoundError("quote", quote_id)
        return quote

    def update_quote(self, db, ctx: RequestContext, *, quote_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        quote = self._load_own(db, ctx, quote_id)
        if not quote_is_mutable(quote["status"]):
            raise InvalidTransitionError(
                message_key="quote_awarded_edit",
                payload={"quote_id": quote_id, "current_status": quote["status"], "action": "edit"},
            )
        quote_input = parse_quote_input(payload)
        self._check_lines_against_rfq(db, ctx, int(quote["rfq_id"]), quote_input)

        quotes = QuoteRepository(company_id=ctx.company_id)
        with db.transaction():
            quotes.update_header(db, quote_id, duration=quote_input.duration, notes=quote_input.notes)
            quotes.replace_items(db, quote_id, quote_input.items)

        current_app.logger.info("quote_updated", extra={"quote_id": quote_id, "company_id": ctx.company_id})
        return ServiceOutput(payload=self._detail_payload(db, ctx, quotes.get_by_id(db, quote_id)))

    def delete_quote(self, db, ctx: RequestContext, *, quote_id: int) -> ServiceOutput:
        quote = self._load_own(db, ctx, quote_id)
        if not quote_is_mutable(quote["status"]):
            raise InvalidTransitionError(
                message_key="quote_awarded_delete",
                payload={"quote_id": quote_id, "current_status": quote["status"], "action": "delete"},
            )
        with db.transaction():
            QuoteRepository(company_id=ctx.company_id).delete(db, quote_id)
            RfqRepository(company_id=ctx.company_id).reset_invite(db, int(quote["rfq_id"]))
        current_app.logger.info(
            "quote_deleted",
            extra={"quote_id": quote_id, "rfq_id": quote["rfq_id"], "company_id": ctx.company_id},
        )
        return ServiceOutput(payload={"quote_id": quote_id, "deleted": True})

    def get_quote(self, db, ctx: RequestContext, *, quote_id: int) -> ServiceOutput:
        quote = QuoteRepository(company_id=ctx.company_id).get_by_id(db, quote_id)
        if not quote:
            raise NotFoundError("quote", quote_id)
        return ServiceOutput(payload=self._detail_payload(db, ctx, quote))

    def _detail_payload(self, db, ctx: RequestContext, quote: dict) -> dict:
        items = QuoteRepository(company_id=ctx.company_id).list_items(db, quote["id"])
        is_buyer = int(quote["buyer_company_id"]) == ctx.company_id
        purchase_order = PurchaseOrderRepository(company_id=ctx.company_id).find_by_quote(db, quote["id"])
        return {
            "quote": quote,
            "items": items,
            "total": round(sum(float(item["price"]) * float(item["quantity"]) for item in items), 2),
            "view": "buyer" if is_buyer else "supplier",
            "purchase_order": purchase_order,
            "can_edit": not is_buyer and quote_is_mutable(quote["status"]),
            "can_award": (
                is_buyer
                and purchase_order is None
                and quote_is_awardable(quote["status"])
                and rfq_action_allowed(quote["rfq_status"], "award")
            ),
        }

    def award_quote(self, db, ctx: RequestContext, *, quote_id: int, payload: Mapping[str, Any] | None = None) -> ServiceOutput:
        """Generate the purchase order for a quote.

        The quote flips to ``awarded``, the PO is inserted as ``ordered`` and the
        remaining submitted quotes of the RFQ are rejected, all in one
        transaction. The unique constraint on ``pos.quote_id`` backs the
        "PO already exists" check against concurrent awards.
        """
        require_roles(ctx, *BUYER_ROLES)
        quotes = QuoteRepository(company_id=ctx.company_id)
        quote = quotes.get_by_id(db, quote_id)
        if not quote:
            raise NotFoundError("quote", quote_id)
        if int(quote["buyer_company_id"]) != ctx.company_id:
            raise AppPermissionError(payload={"quote_id": quote_id})

        purchase_orders = PurchaseOrderRepository(company_id=ctx.company_id)
        existing = purchase_orders.find_by_quote(db, quote_id)
        if existing:
            raise ConflictError(
                code="po_already_exists",
                message_key="po_already_exists",
                payload={"quote_id": quote_id, "purchase_order_id": existing["id"]},
            )
        if not rfq_action_allowed(quote["rfq_status"], "award"):
            raise InvalidTransitionError(
                message_key="rfq_not_awardable",
                payload={"rfq_id": quote["rfq_id"], "current_status": quote["rfq_status"], "action": "award"},
            )
        if not quote_is_awardable(quote["status"]):
            raise InvalidTransitionError(
                message_key="quote_not_submitted",
                payload={"quote_id": quote_id, "current_status": quote["status"], "requested_status": "awarded"},
            )

        notes = optional_text((payload or {}).get("notes"))
        events = StatusEventRepository(company_id=ctx.company_id)
        try:
            with db.transaction():
                awarded_id = quotes.awarded_quote_id(db, int(quote["rfq_id"]))
                if awarded_id is not None:
                    raise ConflictError(
                        code="rfq_already_awarded",
                        payload={"rfq_id": quote["rfq_id"], "awarded_quote_id": awarded_id},
                    )
                if not quotes.transition_status(db, quote_id, from_status="submitted", to_status="awarded"):
                    raise InvalidTransitionError(
                        message_key="quote_not_submitted",
                        payload={"quote_id": quote_id, "requested_status": "awarded"},
                    )
                purchase_order_id = purchase_orders.create(
                    db,
                    quote_id=quote_id,
                    notes=notes,
                    created_by=ctx.user_id,
                )
                quotes.settle_items(db, quote_id, "accepted")
                rejected = quotes.reject_other_quotes(db, int(quote["rfq_id"]), awarded_quote_id=quote_id)
                events.add_event(
                    db,
                    entity="quote",
                    entity_id=quote_id,
                    from_status="submitted",
                    to_status="awarded",
                    reason="quote_awarded",
                    user_id=ctx.user_id,
                )
                for rejected_id in rejected:
                    events.add_event(
                        db,
                        entity="quote",
                        entity_id=rejected_id,
                        from_status="submitted",
                        to_status="rejected",
                        reason="quote_not_selected",
                        user_id=ctx.user_id,
                    )
                events.add_event(
                    db,
                    entity="purchase_order",
                    entity_id=purchase_order_id,
                    from_status=None,
                    to_status="ordered",
                    reason="purchase_order_created",
                    user_id=ctx.user_id,
                )
        except INTEGRITY_ERRORS:
            current_app.logger.warning("purchase_order_conflict", extra={"quote_id": quote_id})
            raise ConflictError(
                code="po_already_exists",
                message_key="po_already_exists",
                payload={"quote_id": quote_id},
            ) from None

        current_app.logger.info(
            "purchase_order_created",
            extra={
                "purchase_order_id": purchase_order_id,
                "quote_id": quote_id,
                "rfq_id": quote["rfq_id"],
                "company_id": ctx.company_id,
                "rejected_quotes": len(rejected),
            },
        )
        self.notification_service.fan_out(
            db,
            ctx,
            recipient_company_id=int(quote["company_id"]),
            kind="po_status_updated",
            reference_id=purchase_order_id,
            status="ordered",
        )
        return ServiceOutput(
            payload={
                "purchase_order": purchase_orders.get_by_id(db, purchase_order_id),
                "quote_id": quote_id,
                "rejected_quote_ids": rejected,
            },
            status_code=201,
        )

    def list_project_quotes(
        self,
        db,
        ctx: RequestContext,
        *,
        project_id: int,
        status: str = "",
        rfq_id: int | None = None,
    ) -> ServiceOutput:
        project = ProjectRepository(company_id=ctx.company_id).get_by_id(db, project_id)
        if not project:
            raise NotFoundError("project", project_id)
        status = status if status in QUOTE_STATUSES else ""
        quotes = QuoteRepository(company_id=ctx.company_id)
        return ServiceOutput(
            payload={
                "project": project,
                "items": quotes.list_for_project(db, project_id, status=status, rfq_id=rfq_id),
                "status_counts": quotes.status_counts_for_project(db, project_id),
                "filters": {"status": status or "all", "rfq_id": rfq_id},
            }
        )

    def list_own_quotes(self, db, ctx: RequestContext, *, status: str = "") -> ServiceOutput:
        status = status if status in QUOTE_STATUSES else ""
        return ServiceOutput(payload={"items": QuoteRepository(company_id=ctx.company_id).list_own(db, status=status)})
