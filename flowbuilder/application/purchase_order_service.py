from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from flask import current_app

from flowbuilder.application.notification_service import NotificationService
from flowbuilder.context import RequestContext
from flowbuilder.domain.contracts import ServiceOutput
from flowbuilder.domain.inputs import format_timestamp, optional_text
from flowbuilder.domain.transitions import (
    PO_STATUSES,
    can_cancel_po,
    can_transition_po,
    next_po_status,
)
from flowbuilder.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionError as AppPermissionError,
    ValidationError,
)
from flowbuilder.infrastructure.repositories import (
    ProjectRepository,
    PurchaseOrderRepository,
    QuoteRepository,
    StatusEventRepository,
)
from flowbuilder.policies import BUYER_ROLES, require_roles


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _transition_error(purchase_order: Mapping[str, Any], requested: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        payload={
            "purchase_order_id": purchase_order["id"],
            "current_status": purchase_order["status"],
            "requested_status": requested,
        },
        params={"current": purchase_order["status"], "requested": requested},
    )


class PurchaseOrderService:
    def __init__(
        self,
        notification_service: NotificationService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.notification_service = notification_service or NotificationService()
        self.clock = clock or _utc_now

    def _load(self, db, ctx: RequestContext, purchase_order_id: int) -> dict:
        purchase_order = PurchaseOrderRepository(company_id=ctx.company_id).get_by_id(db, purchase_order_id)
        if not purchase_order:
            raise NotFoundError("purchase_order", purchase_order_id)
        return purchase_order

    @staticmethod
    def _side(ctx: RequestContext, purchase_order: Mapping[str, Any]) -> str:
        if int(purchase_order["supplier_company_id"]) == ctx.company_id:
            return "supplier"
        return "buyer"

    def list_purchase_orders(
        self,
        db,
        ctx: RequestContext,
        *,
        status: str = "",
        project_id: int | None = None,
    ) -> ServiceOutput:
        status = status if status in PO_STATUSES else ""
        purchase_orders = PurchaseOrderRepository(company_id=ctx.company_id)
        items = purchase_orders.list_visible(db, status=status, project_id=project_id)
        for item in items:
            item["view"] = self._side(ctx, item)
        return ServiceOutput(
            payload={
                "items": items,
                "status_counts": purchase_orders.status_counts(db, project_id=project_id),
                "filters": {"status": status or "all", "project_id": project_id},
            }
        )

    def get_purchase_order(self, db, ctx: RequestContext, *, purchase_order_id: int) -> ServiceOutput:
        purchase_order = self._load(db, ctx, purchase_order_id)
        side = self._side(ctx, purchase_order)
        items = QuoteRepository(company_id=ctx.company_id).list_items(db, int(purchase_order["quote_id"]))
        history = StatusEventRepository(company_id=ctx.company_id).list_for_entity(
            db, entity="purchase_order", entity_id=purchase_order_id
        )
        next_status = next_po_status(purchase_order["status"])
        return ServiceOutput(
            payload={
                "purchase_order": purchase_order,
                "items": items,
                "total": round(sum(float(item["price"]) * float(item["quantity"]) for item in items), 2),
                "view": side,
                "next_status": next_status if side == "supplier" else None,
                "can_cancel": side == "buyer" and can_cancel_po(purchase_order["status"]),
                "history": history,
            }
        )

    def update_notes(self, db, ctx: RequestContext, *, purchase_order_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        purchase_order = self._load(db, ctx, purchase_order_id)
        if self._side(ctx, purchase_order) != "buyer":
            raise AppPermissionError(
                code="po_notes_buyer_only",
                message_key="po_notes_buyer_only",
                payload={"purchase_order_id": purchase_order_id},
            )
        require_roles(ctx, *BUYER_ROLES)
        notes = optional_text(payload.get("notes"))
        PurchaseOrderRepository(company_id=ctx.company_id).update_notes(db, purchase_order_id, notes)
        return ServiceOutput(payload={"purchase_order_id": purchase_order_id, "notes": notes})

    def advance_status(self, db, ctx: RequestContext, *, purchase_order_id: int, payload: Mapping[str, Any]) -> ServiceOutput:
        """Move a PO one step along ordered -> confirmed -> shipped -> delivered.

        Only the supplier company on the quote may advance. A request for
        ``cancelled`` is routed to :meth:`cancel`.
        """
        requested = str(payload.get("status") or "").strip().lower()
        if not requested:
            raise ValidationError(code="field_required", payload={"field": "status"}, params={"field": "status"})
        if requested not in PO_STATUSES:
            raise ValidationError(
                code="status_invalid",
                message_key="status_invalid",
                payload={"field": "status", "status": requested},
                params={"status": requested},
            )
        if requested == "cancelled":
            return self.cancel(db, ctx, purchase_order_id=purchase_order_id)

        purchase_order = self._load(db, ctx, purchase_order_id)
        if self._side(ctx, purchase_order) != "supplier":
            raise AppPermissionError(
                code="po_supplier_only",
                message_key="po_supplier_only",
                payload={"purchase_order_id": purchase_order_id},
            )
        current = purchase_order["status"]
        if not can_transition_po(current, requested):
            raise _transition_error(purchase_order, requested)

        with db.transaction():
            changed = PurchaseOrderRepository(company_id=ctx.company_id).transition_status(
                db, purchase_order_id, from_status=current, to_status=requested
            )
            if not changed:
                raise _transition_error(self._load(db, ctx, purchase_order_id), requested)
            StatusEventRepository(company_id=ctx.company_id).add_event(
                db,
                entity="purchase_order",
                entity_id=purchase_order_id,
                from_status=current,
                to_status=requested,
                reason="purchase_order_advanced",
                user_id=ctx.user_id,
            )

        current_app.logger.info(
            "purchase_order_status_changed",
            extra={
                "purchase_order_id": purchase_order_id,
                "from_status": current,
                "to_status": requested,
                "company_id": ctx.company_id,
            },
        )
        self._notify_counterpart(db, ctx, purchase_order, requested)
        return ServiceOutput(
            payload={
                "purchase_order_id": purchase_order_id,
                "previous_status": current,
                "status": requested,
                "next_status": next_po_status(requested),
            }
        )

    def cancel(self, db, ctx: RequestContext, *, purchase_order_id: int) -> ServiceOutput:
        purchase_order = self._load(db, ctx, purchase_order_id)
        if self._side(ctx, purchase_order) != "buyer":
            raise AppPermissionError(
                code="po_buyer_only",
                message_key="po_buyer_only",
                payload={"purchase_order_id": purchase_order_id},
            )
        require_roles(ctx, *BUYER_ROLES)

        current = purchase_order["status"]
        if not can_cancel_po(current):
            message_key = "po_already_cancelled" if current == "cancelled" else "po_cancel_delivered"
            raise InvalidTransitionError(
                message_key=message_key,
                payload={
                    "purchase_order_id": purchase_order_id,
                    "current_status": current,
                    "requested_status": "cancelled",
                },
            )

        cancelled_at = format_timestamp(self.clock())
        with db.transaction():
            changed = PurchaseOrderRepository(company_id=ctx.company_id).transition_status(
                db,
                purchase_order_id,
                from_status=current,
                to_status="cancelled",
                cancelled_at=cancelled_at,
            )
            if not changed:
                raise _transition_error(self._load(db, ctx, purchase_order_id), "cancelled")
            StatusEventRepository(company_id=ctx.company_id).add_event(
                db,
                entity="purchase_order",
                entity_id=purchase_order_id,
                from_status=current,
                to_status="cancelled",
                reason="purchase_order_cancelled",
                user_id=ctx.user_id,
            )

        current_app.logger.info(
            "purchase_order_status_changed",
            extra={
                "purchase_order_id": purchase_order_id,
                "from_status": current,
                "to_status": "cancelled",
                "company_id": ctx.company_id,
            },
        )
        self._notify_counterpart(db, ctx, purchase_order, "cancelled")
        return ServiceOutput(
            payload={
                "purchase_order_id": purchase_order_id,
                "previous_status": current,
                "status": "cancelled",
                "cancelled_at": cancelled_at,
            }
        )

    def _notify_counterpart(self, db, ctx: RequestContext, purchase_order: Mapping[str, Any], status: str) -> int:
        if self._side(ctx, purchase_order) == "supplier":
            recipient = int(purchase_order["buyer_company_id"])
        else:
            recipient = int(purchase_order["supplier_company_id"])
        return self.notification_service.fan_out(
            db,
            ctx,
            recipient_company_id=recipient,
            kind="po_status_updated",
            reference_id=int(purchase_order["id"]),
            status=status,
        )

    def project_tracker(self, db, ctx: RequestContext, *, project_id: int, status: str = "") -> ServiceOutput:
        project = ProjectRepository(company_id=ctx.company_id).get_by_id(db, project_id)
        if not project:
            raise NotFoundError("project", project_id)
        output = self.list_purchase_orders(db, ctx, status=status, project_id=project_id)
        items = output.payload["items"]
        active = [item for item in items if item["status"] not in ("delivered", "cancelled")]
        return ServiceOutput(
            payload={
                "project": project,
                **output.payload,
                "total_value": round(sum(float(item["total"] or 0) for item in items if item["status"] != "cancelled"), 2),
                "active_count": len(active),
            }
        )
