from __future__ import annotations

from flask import current_app

from flowbuilder.context import RequestContext
from flowbuilder.domain.contracts import ServiceOutput
from flowbuilder.errors import NotFoundError
from flowbuilder.infrastructure.repositories import NotificationRepository, UserRepository
from flowbuilder.ui_strings import notification_message


NOTIFICATION_TARGETS = {
    "rfq_invite": "/rfqs/{reference_id}",
    "po_status_updated": "/purchase-orders/{reference_id}",
}


class NotificationService:
    def _repository(self, ctx: RequestContext) -> NotificationRepository:
        return NotificationRepository(company_id=ctx.company_id, user_id=ctx.user_id)

    def fan_out(
        self,
        db,
        ctx: RequestContext,
        *,
        recipient_company_id: int,
        kind: str,
        reference_id: int,
        **message_params,
    ) -> int:
        """Append one notification per user of ``recipient_company_id``.

        Best-effort: a failed insert is logged and the loop moves on to the next
        recipient. Must run after the triggering transaction has committed.
        """
        message = notification_message(kind, id=reference_id, **message_params)
        repository = self._repository(ctx)
        try:
            recipients = UserRepository(company_id=recipient_company_id).list_ids(db)
        except Exception:
            current_app.logger.exception(
                "notification_recipients_lookup_failed",
                extra={"recipient_company_id": recipient_company_id, "kind": kind, "reference_id": reference_id},
            )
            return 0

        delivered = 0
        for recipient_id in recipients:
            try:
                repository.add(db, recipient_id=recipient_id, kind=kind, reference_id=reference_id, message=message)
            except Exception:
                current_app.logger.warning(
                    "notification_delivery_failed",
                    extra={"recipient_id": recipient_id, "kind": kind, "reference_id": reference_id},
                    exc_info=True,
                )
                continue
            delivered += 1

        current_app.logger.info(
            "notifications_sent",
            extra={
                "kind": kind,
                "reference_id": reference_id,
                "recipient_company_id": recipient_company_id,
                "delivered": delivered,
                "recipients": len(recipients),
            },
        )
        return delivered

    def list_notifications(self, db, ctx: RequestContext, *, unread_only: bool = False) -> ServiceOutput:
        repository = self._repository(ctx)
        items = repository.list_own(db, unread_only=unread_only)
        return ServiceOutput(payload={"items": items, "unread_count": repository.unread_count(db)})

    def unread_count(self, db, ctx: RequestContext) -> ServiceOutput:
        return ServiceOutput(payload={"unread_count": self._repository(ctx).unread_count(db)})

    def mark_read(self, db, ctx: RequestContext, notification_id: int) -> ServiceOutput:
        repository = self._repository(ctx)
        notification = repository.get_own(db, notification_id)
        if not notification:
            raise NotFoundError("notification", notification_id)
        if not notification["is_read"]:
            repository.mark_read(db, notification_id)
        return ServiceOutput(payload={"id": notification_id, "is_read": True})

    def mark_all_read(self, db, ctx: RequestContext) -> ServiceOutput:
        updated = self._repository(ctx).mark_all_read(db)
        return ServiceOutput(payload={"updated": updated, "unread_count": 0})

    def open_notification(self, db, ctx: RequestContext, notification_id: int) -> ServiceOutput:
        repository = self._repository(ctx)
        notification = repository.get_own(db, notification_id)
        if not notification:
            raise NotFoundError("notification", notification_id)
        if not notification["is_read"]:
            repository.mark_read(db, notification_id)
        template = NOTIFICATION_TARGETS.get(str(notification["type"]).lower())
        target = template.format(reference_id=notification["reference_id"]) if template else "/notifications"
        return ServiceOutput(payload={"id": notification_id, "is_read": True, "target": target})
