from __future__ import annotations

from flask import current_app

from flowbuilder.context import RequestContext
from flowbuilder.domain.contracts import ServiceOutput
from flowbuilder.infrastructure.repositories import (
    CompanyRepository,
    NotificationRepository,
    PurchaseOrderRepository,
    RfqRepository,
)


class DashboardService:
    def summary(self, db, ctx: RequestContext) -> ServiceOutput:
        limit = int(current_app.config.get("RECENT_ITEMS_LIMIT", 5))
        company_stats = CompanyRepository(company_id=ctx.company_id).stats(db)
        rfqs = RfqRepository(company_id=ctx.company_id)
        rfq_counts = rfqs.status_counts(db)
        purchase_orders = PurchaseOrderRepository(company_id=ctx.company_id)
        po_counts = purchase_orders.status_counts(db)
        unread = NotificationRepository(company_id=ctx.company_id, user_id=ctx.user_id).unread_count(db)
        return ServiceOutput(
            payload={
                "counts": {
                    "projects": company_stats["projects"],
                    "rfqs": rfq_counts["all"],
                    "open_rfqs": rfq_counts["open"],
                    "purchase_orders": po_counts["all"],
                    "active_purchase_orders": po_counts["ordered"] + po_counts["confirmed"] + po_counts["shipped"],
                    "materials": company_stats["materials"],
                    "users": company_stats["users"],
                    "unread_notifications": unread,
                },
                "recent_rfqs": rfqs.list_recent(db, limit=limit),
                "recent_purchase_orders": purchase_orders.list_visible(db, limit=limit),
            }
        )
